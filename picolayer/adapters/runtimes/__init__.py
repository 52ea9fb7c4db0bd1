"""Ephemeral runtime backends."""
