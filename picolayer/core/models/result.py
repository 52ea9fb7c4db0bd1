"""
Install result — the terminal outcome of one request.

Like the engine's receipts, a result is always produced: backend
failures are captured here, never raised past the orchestrator.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class Outcome(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"


class InstallResult(BaseModel):
    """Outcome of ``Orchestrator.execute``."""

    kind: str
    target: str
    resolved_version: str = ""
    outcome: Outcome = Outcome.SUCCESS
    message: str = ""

    paths_removed: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    error_type: str | None = None
    error_chain: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome == Outcome.FAILED

    @classmethod
    def success(
        cls,
        kind: str,
        target: str,
        resolved_version: str,
        message: str = "",
        **kwargs: Any,
    ) -> InstallResult:
        return cls(
            kind=kind,
            target=target,
            resolved_version=resolved_version,
            outcome=Outcome.SUCCESS,
            message=message,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        kind: str,
        target: str,
        message: str,
        **kwargs: Any,
    ) -> InstallResult:
        return cls(
            kind=kind,
            target=target,
            outcome=Outcome.FAILED,
            message=message,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
