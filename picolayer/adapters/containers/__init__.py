"""Devcontainer features and OCI registry access."""
