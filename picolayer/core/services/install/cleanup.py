"""
Cleanup scope — deferred removal of installation byproducts.

States:
    OPEN    → Actions may be registered.
    CLOSING → Actions are running in reverse registration order.
    CLOSED  → Terminal.  Further closes return the same report.

Every registered action runs exactly once, even when the install
itself failed.  A failing action becomes a ``CleanupWarning`` and the
remaining actions still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from picolayer.adapters.shell import filesystem
from picolayer.core.errors import CleanupWarning, ScopeClosedError

if TYPE_CHECKING:
    from picolayer.adapters.shell.command import CommandRunner

logger = logging.getLogger(__name__)

CleanupAction = Callable[[], Iterable[Path] | None]


class ScopeState(StrEnum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class CleanupEntry:
    label: str
    action: CleanupAction
    path: Path | None = None


@dataclass
class CleanupReport:
    """What closing the scope did."""

    removed_paths: list[str] = field(default_factory=list)
    warnings: list[CleanupWarning] = field(default_factory=list)
    executed: list[str] = field(default_factory=list)

    @property
    def warning_messages(self) -> list[str]:
        return [str(w) for w in self.warnings]


class CleanupScope:
    """Collects cleanup actions and runs them in reverse on close.

    Usable as a context manager::

        with CleanupScope() as scope:
            scope.remove_path("scratch", scratch_dir)
            ...
    """

    def __init__(self) -> None:
        self._entries: list[CleanupEntry] = []
        self.state = ScopeState.OPEN
        self._report: CleanupReport | None = None

    def __enter__(self) -> CleanupScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def labels(self) -> list[str]:
        return [e.label for e in self._entries]

    # ── Registration ────────────────────────────────────────────

    def register(
        self,
        label: str,
        action: CleanupAction,
        path: Path | None = None,
    ) -> None:
        """Defer ``action`` until close.

        ``action`` may return the paths it removed.

        Raises:
            ScopeClosedError: The scope is closing or closed.
        """
        if self.state != ScopeState.OPEN:
            raise ScopeClosedError(
                f"Cannot register '{label}': cleanup scope is {self.state}"
            )
        self._entries.append(CleanupEntry(label=label, action=action, path=path))
        logger.debug("Registered cleanup: %s", label)

    def remove_path(self, label: str, path: Path) -> None:
        self.register(label, lambda: filesystem.remove_path(path), path=path)

    def purge_directory(
        self,
        label: str,
        path: Path,
        patterns: tuple[str, ...] = ("*",),
    ) -> None:
        self.register(
            label,
            lambda: filesystem.purge_directory(path, patterns),
            path=path,
        )

    def run_command(
        self,
        label: str,
        runner: CommandRunner,
        cmd: list[str],
        *,
        needs_root: bool = False,
        env: dict[str, str] | None = None,
    ) -> None:
        def _run() -> None:
            runner.run(cmd, needs_root=needs_root, env=env)

        self.register(label, _run)

    # ── Closing ─────────────────────────────────────────────────

    def close(self) -> CleanupReport:
        """Run every action in reverse registration order.

        Idempotent: a second call returns the first report.
        """
        if self._report is not None:
            return self._report

        self.state = ScopeState.CLOSING
        report = CleanupReport()

        for entry in reversed(self._entries):
            logger.debug("Cleanup: %s", entry.label)
            try:
                removed = entry.action()
            except Exception as e:
                warning = CleanupWarning(entry.label, e)
                logger.debug("%s", warning)
                report.warnings.append(warning)
            else:
                if removed:
                    report.removed_paths.extend(str(p) for p in removed)
            report.executed.append(entry.label)

        self.state = ScopeState.CLOSED
        self._report = report
        if report.removed_paths:
            logger.info("Cleanup removed %d path(s)", len(report.removed_paths))
        return report
