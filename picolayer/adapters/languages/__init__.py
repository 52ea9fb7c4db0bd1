"""Language package manager backends."""
