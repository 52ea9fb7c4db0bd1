"""Adapters — installation backends and the system bindings they use."""
