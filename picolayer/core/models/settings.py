"""
Settings — tool configuration.

Loaded from an optional YAML file, then overridden by environment
variables and CLI flags (see ``picolayer.core.config.loader``).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class RetrySettings(BaseModel):
    """Backoff for transient network failures."""

    max_retries: int = Field(default=3, ge=0, le=10)
    initial_delay_ms: int = Field(default=1000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_ms: int = Field(default=30_000, ge=0)


class Settings(BaseModel):
    """Everything configurable about a picolayer run."""

    install_dir: str = "/usr/local/bin"
    keep_runtime: bool = False          # keep bootstrapped node/pipx runtimes

    network_timeout: float = Field(default=30.0, gt=0)    # per attempt, seconds
    command_timeout: int = Field(default=3600, gt=0)      # per external command
    download_workers: int = Field(default=4, ge=1, le=16)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    github_api_url: str = "https://api.github.com"
    github_token: str | None = None

    pipx_home: str = "/opt/pipx"
    pipx_bin_dir: str = "/usr/local/bin"

    # Filesystem root the backends act on; tests point it at a tmp dir.
    sysroot: Path = Path("/")

    @field_validator("github_api_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def public_dict(self) -> dict:
        """Settings as a dict with secrets masked."""
        data = self.model_dump(mode="json")
        if data.get("github_token"):
            data["github_token"] = "***"
        return data
