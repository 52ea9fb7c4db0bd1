"""Release-binary backends."""
