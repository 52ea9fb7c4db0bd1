"""Request execution and cleanup tracking."""
