"""
Version constraints — ``latest``, exact versions and comparator ranges.

Pure parsing and comparison.  No I/O.

Ranges are one or more comparator clauses joined by commas::

    >=1.2
    >=1.2,<2
    ~=1.4
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from picolayer.core.errors import InvalidRequest

LATEST = "latest"

_OPERATORS = ("~=", "==", "!=", ">=", "<=", ">", "<")
_CLAUSE_RE = re.compile(r"^(~=|==|!=|>=|<=|>|<)\s*v?(\d+(?:\.\d+)*)$")
_EXACT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+\-]*$")
_NUMERIC_RE = re.compile(r"^v?(\d+(?:\.\d+)*)")


def parse_version(value: str) -> tuple[int, ...] | None:
    """Parse the numeric part of a version or tag (``v1.2.3-rc1`` → ``(1, 2, 3)``).

    Returns None when the string has no leading numeric component.
    """
    m = _NUMERIC_RE.match(value.strip())
    if not m:
        return None
    return tuple(int(x) for x in m.group(1).split("."))


def _pad(parts: tuple[int, ...], width: int) -> tuple[int, ...]:
    return parts + (0,) * (width - len(parts))


def _compare(op: str, selected: tuple[int, ...], ref: tuple[int, ...]) -> bool:
    width = max(len(selected), len(ref))
    sel, rf = _pad(selected, width), _pad(ref, width)
    if op == "==":
        return sel == rf
    if op == "!=":
        return sel != rf
    if op == ">=":
        return sel >= rf
    if op == "<=":
        return sel <= rf
    if op == ">":
        return sel > rf
    if op == "<":
        return sel < rf
    # ~=: same release series, at least the reference
    prefix = ref[:-1] if len(ref) > 1 else ref
    return selected[: len(prefix)] == prefix and sel >= rf


@dataclass(frozen=True)
class VersionConstraint:
    """A parsed version constraint.

    ``kind`` is ``"latest"``, ``"exact"`` or ``"range"``.
    """

    raw: str
    kind: str
    clauses: tuple[tuple[str, tuple[int, ...]], ...] = ()

    @classmethod
    def parse(cls, value: str | None) -> VersionConstraint:
        text = (value or LATEST).strip()
        if not text or text.lower() == LATEST:
            return cls(raw=LATEST, kind="latest")

        if text.startswith(_OPERATORS):
            clauses = []
            for part in text.split(","):
                m = _CLAUSE_RE.match(part.strip())
                if not m:
                    raise InvalidRequest(f"Invalid version range: {text!r}")
                ref = tuple(int(x) for x in m.group(2).split("."))
                if m.group(1) == "~=" and len(ref) < 2:
                    raise InvalidRequest(f"'~=' needs at least two components: {text!r}")
                clauses.append((m.group(1), ref))
            return cls(raw=text, kind="range", clauses=tuple(clauses))

        if not _EXACT_RE.match(text):
            raise InvalidRequest(f"Invalid version: {text!r}")
        return cls(raw=text, kind="exact")

    @property
    def is_latest(self) -> bool:
        return self.kind == "latest"

    @property
    def is_exact(self) -> bool:
        return self.kind == "exact"

    @property
    def is_range(self) -> bool:
        return self.kind == "range"

    def matches(self, version: str) -> bool:
        """Check whether ``version`` satisfies this constraint."""
        if self.is_latest:
            return True
        if self.is_exact:
            return version.lstrip("v") == self.raw.lstrip("v")
        parsed = parse_version(version)
        if parsed is None:
            return False
        return all(_compare(op, parsed, ref) for op, ref in self.clauses)

    def range_text(self, separator: str = ",") -> str:
        """Render the range clauses, e.g. ``>=1.2 <2`` with ``separator=" "``."""
        return separator.join(
            f"{op}{'.'.join(str(p) for p in ref)}" for op, ref in self.clauses
        )

    def __str__(self) -> str:
        return self.raw
