"""
Apk backend — Alpine Linux packages.
"""

from __future__ import annotations

import logging

from picolayer.adapters.base import Backend, BackendContext
from picolayer.adapters.shell.filesystem import purge_directory
from picolayer.core.errors import InvalidRequest
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.services.install.cleanup import CleanupScope

logger = logging.getLogger(__name__)

# version-constraint operator → apk dependency operator
_APK_OPERATORS = {
    "==": "=",
    ">=": ">=",
    "<=": "<=",
    ">": ">",
    "<": "<",
    "~=": "~",
}


# ── Shared apk helpers ──────────────────────────────────────────


def require_alpine(context: BackendContext, tool: str = "apk") -> None:
    distro = context.get_distro()
    if not distro.is_alpine:
        raise InvalidRequest(f"{tool} requires Alpine Linux (found {distro.id})")


def register_apk_cache_cleanup(context: BackendContext, scope: CleanupScope) -> None:
    """Purge index files and cached ``.apk`` archives on scope close."""
    cache = context.path("/var/cache/apk")

    def _clean():
        # Fails harmlessly when no cache is configured
        context.runner.run(["apk", "cache", "clean"], needs_root=True, check=False)
        return purge_directory(cache)

    scope.register("purge apk cache", _clean, path=cache)


def apk_update(context: BackendContext) -> None:
    logger.info("Updating apk repositories")
    context.runner.run(["apk", "update"], needs_root=True)


def apk_add(context: BackendContext, packages: list[str]) -> None:
    logger.info("Installing apk packages: %s", " ".join(packages))
    context.runner.run(["apk", "add", "--no-cache", *packages], needs_root=True)


def apk_del(context: BackendContext, packages: list[str]) -> None:
    context.runner.run(["apk", "del", "--no-cache", *packages], needs_root=True)


def apk_version(context: BackendContext, package: str) -> str:
    name = package
    for op in ("~", ">=", "<=", "=", ">", "<"):
        name = name.split(op, 1)[0]
    result = context.runner.run(["apk", "list", "--installed", name], check=False)
    for line in result.stdout.splitlines():
        token = line.split(" ", 1)[0]
        if token.startswith(f"{name}-"):
            return token[len(name) + 1:]
    return ""


# ── Backend ─────────────────────────────────────────────────────


class ApkBackend(Backend):
    @property
    def kind(self) -> BackendKind:
        return BackendKind.APK

    def is_available(self) -> bool:
        return self.context.runner.which("apk") is not None

    def validate(self, request: InstallRequest) -> None:
        self._pinned(request)

    def _pinned(self, request: InstallRequest) -> list[str]:
        packages = request.items
        constraint = request.constraint
        if constraint.is_latest:
            return packages
        if len(packages) != 1:
            raise InvalidRequest("A version can only be given for a single package")
        if constraint.is_exact:
            return [f"{packages[0]}={constraint.raw}"]
        if len(constraint.clauses) != 1 or constraint.clauses[0][0] not in _APK_OPERATORS:
            raise InvalidRequest(
                f"apk supports a single version comparator, got {constraint}"
            )
        op, ref = constraint.clauses[0]
        return [f"{packages[0]}{_APK_OPERATORS[op]}{'.'.join(str(p) for p in ref)}"]

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        require_alpine(ctx)
        if not self.is_available():
            raise InvalidRequest("apk command not found in PATH")
        packages = self._pinned(request)

        register_apk_cache_cleanup(ctx, scope)
        apk_update(ctx)
        apk_add(ctx, packages)

        versions = [apk_version(ctx, p) for p in packages]
        if len(versions) == 1:
            return versions[0]
        return ",".join(f"{p}={v}" for p, v in zip(request.items, versions))
