"""
Backend registry — the single point of backend lookup.

The set of backends is closed: ``BackendRegistry.default`` builds one
implementation per ``BackendKind`` and refuses to start when a kind is
left without one.
"""

from __future__ import annotations

import logging
from typing import Any

from picolayer.adapters.base import Backend, BackendContext
from picolayer.core.errors import UnknownBackend
from picolayer.core.models.request import BackendKind

logger = logging.getLogger(__name__)


class BackendRegistry:
    """Maps backend kinds to backend instances."""

    def __init__(self) -> None:
        self._backends: dict[BackendKind, Backend] = {}

    @classmethod
    def default(cls, context: BackendContext) -> BackendRegistry:
        """Registry with every built-in backend."""
        from picolayer.adapters.containers.feature import DevcontainerFeatureBackend
        from picolayer.adapters.languages.node import NpmBackend
        from picolayer.adapters.languages.python import PipxBackend
        from picolayer.adapters.packages.apk import ApkBackend
        from picolayer.adapters.packages.apt import AptBackend, AptitudeBackend
        from picolayer.adapters.packages.brew import BrewBackend
        from picolayer.adapters.releases.github import GhReleaseBackend
        from picolayer.adapters.runtimes.pkgx import PkgxBackend

        registry = cls()
        for backend in (
            AptBackend(context, frontend="apt-get"),
            AptBackend(context, frontend="apt"),
            AptitudeBackend(context),
            ApkBackend(context),
            BrewBackend(context),
            NpmBackend(context),
            PipxBackend(context),
            GhReleaseBackend(context),
            PkgxBackend(context),
            DevcontainerFeatureBackend(context),
        ):
            registry.register(backend)
        registry.check_complete()
        return registry

    def register(self, backend: Backend) -> None:
        kind = backend.kind
        if kind in self._backends:
            logger.warning("Overwriting existing backend: %s", kind)
        self._backends[kind] = backend
        logger.debug("Registered backend: %s", kind)

    def get(self, kind: str) -> Backend:
        """Look up the backend for ``kind``.

        Raises:
            UnknownBackend: Not a known kind, or nothing registered for it.
        """
        try:
            key = BackendKind(kind)
        except ValueError as e:
            raise UnknownBackend(kind) from e
        backend = self._backends.get(key)
        if backend is None:
            raise UnknownBackend(kind)
        return backend

    @property
    def kinds(self) -> list[str]:
        return [k.value for k in self._backends]

    def check_complete(self) -> None:
        missing = [k.value for k in BackendKind if k not in self._backends]
        if missing:
            raise RuntimeError(f"No backend registered for: {', '.join(missing)}")

    def backend_status(self) -> dict[str, dict[str, Any]]:
        """Availability of every registered backend."""
        status = {}
        for kind, backend in self._backends.items():
            try:
                available = backend.is_available()
            except Exception as e:
                logger.debug("Availability check failed for %s: %s", kind, e)
                available = False
            status[kind.value] = {
                "kind": kind.value,
                "available": available,
                "type": backend.__class__.__name__,
            }
        return status
