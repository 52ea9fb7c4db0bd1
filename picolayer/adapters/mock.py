"""
Mock backend — test double for orchestrator and CLI tests.

Records every request, registers configurable cleanup actions, and
can be told to fail with any exception.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from picolayer.adapters.base import Backend, BackendContext
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.services.install.cleanup import CleanupScope


class MockBackend(Backend):
    """Universal mock backend.

    By default, succeeds and returns ``resolved_version``.
    """

    def __init__(
        self,
        context: BackendContext | None = None,
        kind: BackendKind = BackendKind.APT_GET,
        resolved_version: str = "1.0.0",
        available: bool = True,
    ):
        super().__init__(context)  # type: ignore[arg-type]
        self._kind = kind
        self._resolved = resolved_version
        self._available = available
        self._error: BaseException | None = None
        self._cleanup: list[tuple[str, Callable[[], list[Path] | None]]] = []
        self._call_log: list[InstallRequest] = []

    @property
    def kind(self) -> BackendKind:
        return self._kind

    @property
    def call_log(self) -> list[InstallRequest]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, error: BaseException) -> None:
        """Raise ``error`` from ``install`` after registering cleanup."""
        self._error = error

    def add_cleanup(self, label: str, action: Callable[[], list[Path] | None]) -> None:
        self._cleanup.append((label, action))

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        self._call_log.append(request)
        for label, action in self._cleanup:
            scope.register(label, action)
        if self._error is not None:
            raise self._error
        return self._resolved

    def reset(self) -> None:
        self._call_log.clear()
        self._cleanup.clear()
        self._error = None
