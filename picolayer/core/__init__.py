"""Core domain — models, config and services."""
