"""
Orchestrator — run one install request end to end.

    validate → pick backend → open scope → install → close scope → result

Nothing escapes ``execute``: every failure, expected or not, becomes a
failed ``InstallResult``.  The cleanup scope is closed in a ``finally``
so byproducts are removed whether the install succeeded or not.
"""

from __future__ import annotations

import logging
import time

from picolayer.adapters.base import BackendContext
from picolayer.adapters.registry import BackendRegistry
from picolayer.core.errors import InvalidRequest, PicolayerError, error_chain
from picolayer.core.models.request import InstallRequest
from picolayer.core.models.result import InstallResult
from picolayer.core.models.settings import Settings
from picolayer.core.models.version import VersionConstraint
from picolayer.core.services.install.cleanup import CleanupScope

logger = logging.getLogger(__name__)


class Orchestrator:
    """Executes install requests against the backend registry.

    Args:
        settings: Effective configuration.
        registry: Backends to dispatch to (default: all built-ins).
    """

    def __init__(
        self,
        settings: Settings,
        registry: BackendRegistry | None = None,
    ):
        self.settings = settings
        self._registry = registry

    @property
    def registry(self) -> BackendRegistry:
        if self._registry is None:
            self._registry = BackendRegistry.default(BackendContext.from_settings(self.settings))
        return self._registry

    def validate(self, request: InstallRequest) -> None:
        """Check the request shape.

        Raises:
            InvalidRequest: Empty target or malformed version.
        """
        if not request.target.strip():
            raise InvalidRequest("A target is required")
        VersionConstraint.parse(request.version)

    def execute(self, request: InstallRequest) -> InstallResult:
        """Run ``request`` and return its terminal result."""
        start = time.monotonic()
        scope = CleanupScope()
        resolved = ""
        error: BaseException | None = None

        logger.info("Installing %s via %s (version %s)", request.target, request.kind, request.version)
        try:
            self.validate(request)
            backend = self.registry.get(request.kind)
            backend.validate(request)
            resolved = backend.install(request, scope)
        except PicolayerError as e:
            error = e
        except Exception as e:
            logger.debug("Unexpected error installing %s", request.target, exc_info=True)
            error = e
        finally:
            report = scope.close()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        common = {
            "paths_removed": report.removed_paths,
            "warnings": report.warning_messages,
            "duration_ms": elapsed_ms,
        }

        if error is not None:
            # The CLI reports the failure; keep the log to diagnostics
            logger.debug("%s: %s", type(error).__name__, error)
            return InstallResult.failure(
                kind=request.kind,
                target=request.target,
                message=str(error) or type(error).__name__,
                error_type=type(error).__name__,
                error_chain=error_chain(error),
                **common,
            )

        logger.info("Installed %s %s in %dms", request.target, resolved, elapsed_ms)
        return InstallResult.success(
            kind=request.kind,
            target=request.target,
            resolved_version=resolved or "",
            message=f"Installed {request.target}" + (f" {resolved}" if resolved else ""),
            **common,
        )
