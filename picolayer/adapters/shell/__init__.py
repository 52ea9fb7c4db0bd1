"""Subprocess, filesystem and distro detection."""
