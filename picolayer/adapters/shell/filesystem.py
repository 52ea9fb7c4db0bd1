"""
Filesystem helpers — removal and scratch space.

All helpers report what they actually removed so the cleanup scope
can tell the caller which paths left the layer.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "picolayer_"


def under_root(root: Path, path: str | Path) -> Path:
    """Re-anchor an absolute system path below ``root``."""
    p = Path(path)
    if p.is_absolute():
        p = p.relative_to(p.anchor)
    return root / p


def remove_path(path: Path) -> list[Path]:
    """Remove a file, symlink or directory tree.

    Returns:
        ``[path]`` when something was removed, else ``[]``.
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
    else:
        return []
    logger.debug("Removed %s", path)
    return [path]


def purge_directory(path: Path, patterns: tuple[str, ...] = ("*",)) -> list[Path]:
    """Remove the children of ``path`` matching any glob pattern.

    The directory itself is kept.  A missing directory is not an error.
    """
    if not path.is_dir():
        return []
    removed: list[Path] = []
    seen: set[Path] = set()
    for pattern in patterns:
        for child in sorted(path.glob(pattern)):
            if child in seen:
                continue
            seen.add(child)
            removed.extend(remove_path(child))
    return removed


def make_scratch_dir(prefix: str = SCRATCH_PREFIX) -> Path:
    """Create a private temporary directory."""
    return Path(tempfile.mkdtemp(prefix=prefix))
