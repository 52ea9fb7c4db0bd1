"""
Install request — what the caller asked for.

A request is immutable once built.  The orchestrator validates it
before any backend sees it.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from picolayer.core.models.version import VersionConstraint

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class BackendKind(StrEnum):
    """Every installation strategy picolayer knows about."""

    APT_GET = "apt-get"
    APT = "apt"
    APTITUDE = "aptitude"
    APK = "apk"
    BREW = "brew"
    NPM = "npm"
    PIPX = "pipx"
    GH_RELEASE = "gh-release"
    PKGX = "pkgx"
    DEVCONTAINER_FEATURE = "devcontainer-feature"


def split_list(value: str) -> list[str]:
    """Split a comma-separated list, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_flag(value: str | bool | None, default: bool = False) -> bool:
    """Interpret a ``key=value`` option as a boolean."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


class InstallRequest(BaseModel):
    """A single install (or execute) request.

    ``options`` steer the backend, ``parameters`` are forwarded to the
    installed artifact (devcontainer feature options), ``env`` and
    ``args`` are handed to executed scripts and tools.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    target: str
    version: str = "latest"
    options: dict[str, str] = Field(default_factory=dict)
    parameters: dict[str, str] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    args: tuple[str, ...] = ()

    @property
    def constraint(self) -> VersionConstraint:
        """Parsed version constraint.  Raises ``InvalidRequest`` when malformed."""
        return VersionConstraint.parse(self.version)

    @property
    def items(self) -> list[str]:
        """The target split as a comma-separated list (package names)."""
        return split_list(self.target)

    def option(self, key: str, default: str = "") -> str:
        return self.options.get(key, default)

    def flag(self, key: str, default: bool = False) -> bool:
        return parse_flag(self.options.get(key), default)
