"""
Platform detection — architecture, OS and libc of the target system.

Asset names in the wild spell the same platform many ways
(``amd64``, ``x86_64``, ``x64``; ``darwin``, ``macos``, ``osx``).
Each canonical value has one *exact* token and a set of *aliases*;
the resolver ranks exact matches above alias matches.
"""

from __future__ import annotations

import logging
import platform as _platform
import re
import sys
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# ── Token tables ────────────────────────────────────────────────

# canonical arch → (exact token, aliases)
ARCH_TOKENS: dict[str, tuple[str, tuple[str, ...]]] = {
    "x86_64": ("x86_64", ("amd64", "x86-64", "x64")),
    "aarch64": ("aarch64", ("arm64",)),
    "armv7": ("armv7", ("armv7l", "armhf", "arm")),
    "i686": ("i686", ("i386", "386", "x86")),
    "riscv64": ("riscv64", ()),
    "ppc64le": ("ppc64le", ()),
    "s390x": ("s390x", ()),
}

# canonical OS → (exact token, aliases)
OS_TOKENS: dict[str, tuple[str, tuple[str, ...]]] = {
    "linux": ("linux", ()),
    "macos": ("darwin", ("macos", "mac-os", "osx", "apple", "mac")),
    "windows": ("windows", ("win64", "win32", "win")),
}

LIBC_TOKENS: dict[str, tuple[str, ...]] = {
    "gnu": ("gnu", "glibc"),
    "musl": ("musl",),
}

_MACHINE_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv7l": "armv7",
    "armv8l": "armv7",
    "i386": "i686",
    "i586": "i686",
}


def token_regex(token: str) -> re.Pattern[str]:
    """Match ``token`` as a whole word of an asset name.

    ``x86`` must not match inside ``x86_64`` or ``x86-64``.
    """
    tail = r"(?![a-z0-9])"
    if token == "x86":
        tail = r"(?![a-z0-9]|[_-]64)"
    return re.compile(r"(?<![a-z0-9])" + re.escape(token) + tail)


def _any_token(tokens: tuple[str, ...], name: str) -> bool:
    return any(token_regex(t).search(name) for t in tokens)


def arch_match(arch: str, name: str) -> int:
    """2 = exact token, 1 = alias, 0 = not mentioned."""
    exact, aliases = ARCH_TOKENS.get(arch, (arch, ()))
    if token_regex(exact).search(name):
        return 2
    if _any_token(aliases, name):
        return 1
    return 0


def os_match(os_name: str, name: str) -> int:
    """2 = exact token, 1 = alias, 0 = not mentioned."""
    exact, aliases = OS_TOKENS.get(os_name, (os_name, ()))
    if token_regex(exact).search(name):
        return 2
    if _any_token(aliases, name):
        return 1
    return 0


def pattern_alternation(tokens: tuple[str, ...]) -> str:
    """Regex alternation used for ``{os}``/``{arch}`` placeholders."""
    return "(?:" + "|".join(re.escape(t) for t in tokens) + ")"


@dataclass(frozen=True)
class Platform:
    """A target platform: ``arch``, ``os`` and (Linux only) ``libc``."""

    arch: str
    os: str
    libc: str = ""

    @classmethod
    def detect(cls, root: Path = Path("/")) -> Platform:
        machine = _platform.machine().lower()
        arch = _MACHINE_ALIASES.get(machine, machine)

        if sys.platform == "darwin":
            return cls(arch=arch, os="macos")
        if sys.platform.startswith("win"):
            return cls(arch=arch, os="windows")
        return cls(arch=arch, os="linux", libc=detect_libc(root))

    @classmethod
    def parse(cls, triple: str) -> Platform:
        """Parse a target triple such as ``x86_64-unknown-linux-gnu``."""
        parts = triple.lower().split("-")
        arch = _MACHINE_ALIASES.get(parts[0], parts[0])
        rest = parts[1:]
        if "darwin" in rest or "apple" in rest:
            return cls(arch=arch, os="macos")
        if "windows" in rest:
            return cls(arch=arch, os="windows")
        libc = "musl" if "musl" in rest else "gnu"
        return cls(arch=arch, os="linux", libc=libc)

    @property
    def triple(self) -> str:
        if self.os == "macos":
            return f"{self.arch}-apple-darwin"
        if self.os == "windows":
            return f"{self.arch}-pc-windows-msvc"
        return f"{self.arch}-unknown-linux-{self.libc or 'gnu'}"

    def arch_tokens(self) -> tuple[str, ...]:
        exact, aliases = ARCH_TOKENS.get(self.arch, (self.arch, ()))
        return (exact, *aliases)

    def os_tokens(self) -> tuple[str, ...]:
        exact, aliases = OS_TOKENS.get(self.os, (self.os, ()))
        return (exact, *aliases)

    def foreign_arch(self, name: str) -> bool:
        """True when ``name`` mentions only architectures other than ours."""
        if arch_match(self.arch, name):
            return False
        return any(arch_match(other, name) for other in ARCH_TOKENS if other != self.arch)

    def foreign_os(self, name: str) -> bool:
        if os_match(self.os, name):
            return False
        return any(os_match(other, name) for other in OS_TOKENS if other != self.os)

    def libc_score(self, name: str) -> int | None:
        """1 = our libc, 0 = unspecified, -1 = usable foreign libc, None = unusable."""
        if not self.libc:
            return 0
        if _any_token(LIBC_TOKENS.get(self.libc, ()), name):
            return 1
        for other, tokens in LIBC_TOKENS.items():
            if other != self.libc and _any_token(tokens, name):
                # static musl builds run on glibc; the reverse does not hold
                return -1 if other == "musl" else None
        return 0

    def __str__(self) -> str:
        return self.triple


def detect_libc(root: Path = Path("/")) -> str:
    """``musl`` when the musl loader is present, else ``gnu``."""
    for libdir in ("lib", "usr/lib"):
        base = root / libdir
        if base.is_dir() and any(base.glob("ld-musl-*")):
            return "musl"
    if (root / "etc/alpine-release").is_file():
        return "musl"
    return "gnu"
