"""System package manager backends."""
