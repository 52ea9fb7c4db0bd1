"""Retry with backoff."""
