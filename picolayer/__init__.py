"""picolayer — install anything, leave nothing."""

__version__ = "0.1.0"
