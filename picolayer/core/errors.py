"""
Error taxonomy — every failure picolayer can report.

Backends raise these; the orchestrator catches them at its boundary
and turns them into a failed ``InstallResult``.  Only
``TransientFetchFailed`` is ever retried.
"""

from __future__ import annotations


class PicolayerError(Exception):
    """Base class for all picolayer errors."""

    retryable = False


class UnknownBackend(PicolayerError):
    """No backend is registered for the requested kind."""

    def __init__(self, kind: str):
        super().__init__(f"Unknown backend: {kind!r}")
        self.kind = kind


class InvalidRequest(PicolayerError):
    """The request is malformed or not supported on this system."""


class ReleaseNotFound(PicolayerError):
    """The repository, release or tag does not exist."""


class NoMatchingAsset(ReleaseNotFound):
    """A release exists but none of its assets fits this platform."""


class AmbiguousAsset(PicolayerError):
    """Several assets rank equally for this platform."""

    def __init__(self, candidates: list[str]):
        names = ", ".join(candidates)
        super().__init__(
            f"Multiple assets match equally well: {names}. "
            "Use --asset-pattern to choose one."
        )
        self.candidates = candidates


class FetchFailed(PicolayerError):
    """A network request failed and should not be retried."""

    def __init__(self, message: str, *, url: str = "", status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class TransientFetchFailed(FetchFailed):
    """A network request failed in a way worth retrying."""

    retryable = True


class ChecksumMismatch(PicolayerError):
    """Downloaded bytes do not match the expected digest."""

    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(
            f"Checksum mismatch for {name}: expected {expected}, got {actual}"
        )
        self.name = name
        self.expected = expected
        self.actual = actual


class BackendExecutionFailed(PicolayerError):
    """An external command exited non-zero (or could not run at all)."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        stderr_tail: str = "",
    ):
        detail = message
        if exit_code is not None:
            detail = f"{message} (exit {exit_code})"
        if stderr_tail.strip():
            detail = f"{detail}: {stderr_tail.strip().splitlines()[-1]}"
        super().__init__(detail)
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail


class ArtifactError(PicolayerError):
    """A downloaded artifact is unusable (bad archive, missing binary)."""


class CleanupWarning(PicolayerError):
    """A cleanup action failed. Recorded, never raised out of a scope."""

    def __init__(self, label: str, cause: BaseException):
        super().__init__(f"Cleanup '{label}' failed: {cause}")
        self.label = label
        self.cause = cause


class ScopeClosedError(PicolayerError):
    """Raised when registering on a scope that is no longer open."""


def error_chain(exc: BaseException) -> list[str]:
    """Return the messages along ``exc``'s cause/context chain."""
    chain: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(f"{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__
    return chain
