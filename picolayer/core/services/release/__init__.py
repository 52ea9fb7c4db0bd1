"""Release resolution, checksum verification and archive extraction."""
