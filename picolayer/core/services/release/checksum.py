"""
Checksum verification — integrity of downloaded bytes.

``verify`` hashes the exact downloaded bytes before anything is
written to disk or extracted.  The rest of the module finds the
expected digest in the checksum files projects publish next to their
release assets.
"""

from __future__ import annotations

import hmac
import logging
import re

from picolayer.core.errors import ChecksumMismatch, InvalidRequest
from picolayer.core.models.release import SUPPORTED_ALGORITHMS, Digest

logger = logging.getLogger(__name__)

# Suffixes stripped when matching an asset against a checksum line
COMPRESSION_SUFFIXES = (
    ".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2",
    ".tar.zst", ".zip", ".gz", ".xz", ".bz2", ".zst", ".tar",
)

# Per-asset checksum file suffixes, in preference order
PER_ASSET_SUFFIXES = (".sha256", ".sha256sum", ".sha512", ".sha512sum")

# Release-wide checksum files, in preference order
SHARED_CHECKSUM_FILES = (
    "sha256sums",
    "sha256sums.txt",
    "checksums.txt",
    "checksums",
    "checksums.sha256",
    "sha512sums",
    "sha512sums.txt",
    "checksums.sha512",
)

_HEX_LENGTHS = {length for length in SUPPORTED_ALGORITHMS.values()}
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
# BSD style: SHA256 (name) = hash
_BSD_RE = re.compile(r"^(SHA\d+)\s*\((.+)\)\s*=\s*([0-9a-fA-F]+)$", re.IGNORECASE)


def verify(data: bytes, expected: Digest, name: str = "artifact") -> None:
    """Compare ``data`` against ``expected``.

    Raises:
        ChecksumMismatch: On any difference.
    """
    actual = Digest.compute(data, expected.algorithm)
    if not hmac.compare_digest(actual.value, expected.value):
        raise ChecksumMismatch(name, str(expected), str(actual))
    logger.debug("Checksum OK for %s (%s)", name, expected.algorithm)


def _is_hex_digest(value: str) -> bool:
    return len(value) in _HEX_LENGTHS and bool(_HEX_RE.match(value))


def _clean_name(name: str) -> str:
    name = name.strip().lstrip("*")
    if name.startswith("./"):
        name = name[2:]
    return name.rsplit("/", 1)[-1]


def parse_checksum_file(text: str) -> dict[str, Digest]:
    """Parse a checksum file into ``{filename: Digest}``.

    Understands ``hash  name``, ``hash *name``, ``name: hash`` and
    BSD ``SHA256 (name) = hash``.  A file holding a single bare hash
    maps it to the empty name.
    """
    entries: dict[str, Digest] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        m = _BSD_RE.match(line)
        if m:
            digest = _digest_or_none(m.group(3), m.group(1).lower())
            if digest:
                entries[_clean_name(m.group(2))] = digest
            continue

        if ":" in line:
            name, _, value = line.rpartition(":")
            value = value.strip()
            if _is_hex_digest(value):
                digest = _digest_or_none(value)
                if digest:
                    entries[_clean_name(name)] = digest
                continue

        parts = line.split(None, 1)
        if _is_hex_digest(parts[0]):
            digest = _digest_or_none(parts[0])
            if digest:
                entries[_clean_name(parts[1]) if len(parts) > 1 else ""] = digest
    return entries


def _digest_or_none(value: str, algorithm: str | None = None) -> Digest | None:
    try:
        if algorithm:
            return Digest.parse(f"{algorithm}:{value}")
        return Digest.from_hex(value)
    except InvalidRequest:
        return None


def filename_variants(name: str) -> list[str]:
    """``tool.tar.gz`` → ``["tool.tar.gz", "tool"]``."""
    variants = [name]
    lowered = name.lower()
    for suffix in COMPRESSION_SUFFIXES:
        if lowered.endswith(suffix) and len(name) > len(suffix):
            variants.append(name[: -len(suffix)])
            break
    return variants


def find_digest(entries: dict[str, Digest], asset_name: str) -> Digest | None:
    """Pick the entry for ``asset_name`` (or its uncompressed name)."""
    for variant in filename_variants(asset_name):
        if variant in entries:
            return entries[variant]
    if set(entries) == {""}:
        return entries[""]
    return None


def checksum_asset_candidates(asset_name: str, available: list[str]) -> list[str]:
    """Names of release assets that may hold ``asset_name``'s checksum.

    Per-asset files come first, then release-wide ones.
    """
    by_lower = {name.lower(): name for name in available}
    candidates: list[str] = []

    for variant in filename_variants(asset_name):
        for suffix in PER_ASSET_SUFFIXES:
            hit = by_lower.get(f"{variant}{suffix}".lower())
            if hit and hit not in candidates:
                candidates.append(hit)

    for shared in SHARED_CHECKSUM_FILES:
        hit = by_lower.get(shared)
        if hit and hit not in candidates:
            candidates.append(hit)

    # goreleaser style: <project>_<version>_checksums.txt
    for name in sorted(available):
        if name.lower().endswith("checksums.txt") and name not in candidates:
            candidates.append(name)
    return candidates


def is_checksum_file(name: str) -> bool:
    lowered = name.lower()
    return (
        lowered in SHARED_CHECKSUM_FILES
        or lowered.endswith(PER_ASSET_SUFFIXES)
        or lowered.endswith("checksums.txt")
    )
