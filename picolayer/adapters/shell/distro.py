"""
Distro detection — which package manager family this system uses.

Reads ``/etc/os-release`` (and the Alpine/Debian marker files) below
the configured system root.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

logger = logging.getLogger(__name__)


class DistroFamily(StrEnum):
    DEBIAN = "debian"
    ALPINE = "alpine"
    MACOS = "macos"
    OTHER = "other"


@dataclass(frozen=True)
class DistroInfo:
    """Identity of the running system."""

    id: str = "unknown"
    id_like: tuple[str, ...] = field(default_factory=tuple)
    version_id: str = ""
    pretty_name: str = ""
    family: DistroFamily = DistroFamily.OTHER

    @property
    def is_debian_like(self) -> bool:
        return self.family == DistroFamily.DEBIAN

    @property
    def is_ubuntu(self) -> bool:
        return self.id == "ubuntu"

    @property
    def is_alpine(self) -> bool:
        return self.family == DistroFamily.ALPINE

    @property
    def is_macos(self) -> bool:
        return self.family == DistroFamily.MACOS


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines, unquoting values."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def detect_distro(root: Path = Path("/")) -> DistroInfo:
    """Detect the distribution installed under ``root``."""
    if sys.platform == "darwin" and root == Path("/"):
        return DistroInfo(id="macos", pretty_name="macOS", family=DistroFamily.MACOS)

    values: dict[str, str] = {}
    for candidate in ("etc/os-release", "usr/lib/os-release"):
        path = root / candidate
        if path.is_file():
            try:
                values = parse_os_release(path.read_text(encoding="utf-8"))
            except OSError as e:
                logger.debug("Cannot read %s: %s", path, e)
                continue
            break

    distro_id = values.get("ID", "unknown").lower()
    id_like = tuple(values.get("ID_LIKE", "").lower().split())

    if distro_id == "alpine" or (root / "etc/alpine-release").is_file():
        family = DistroFamily.ALPINE
    elif (
        distro_id in ("debian", "ubuntu")
        or "debian" in id_like
        or "ubuntu" in id_like
        or (root / "etc/debian_version").is_file()
    ):
        family = DistroFamily.DEBIAN
    else:
        family = DistroFamily.OTHER

    info = DistroInfo(
        id=distro_id,
        id_like=id_like,
        version_id=values.get("VERSION_ID", ""),
        pretty_name=values.get("PRETTY_NAME", ""),
        family=family,
    )
    logger.debug("Detected distro: %s (%s)", info.id, info.family)
    return info
