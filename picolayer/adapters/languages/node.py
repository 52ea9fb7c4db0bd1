"""
Npm backend — global npm packages.

Bootstraps Node.js + npm when npm is missing.  The npm cache, logs
and npx cache are purged after the install.
"""

from __future__ import annotations

import json
import logging

from picolayer.adapters.base import Backend
from picolayer.adapters.packages.bootstrap import bootstrap_runtime
from picolayer.adapters.shell.filesystem import remove_path
from picolayer.core.errors import InvalidRequest
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.services.install.cleanup import CleanupScope

logger = logging.getLogger(__name__)

NPM_CACHE_DIRS = ("_cacache", "_logs", "_npx")


class NpmBackend(Backend):
    """``npm install -g``.

    Options:
        keep-runtime: Keep a bootstrapped Node.js after the install.
    """

    @property
    def kind(self) -> BackendKind:
        return BackendKind.NPM

    def is_available(self) -> bool:
        return self.context.runner.which("npm") is not None

    def _specs(self, request: InstallRequest) -> list[str]:
        packages = request.items
        constraint = request.constraint
        if constraint.is_latest:
            return packages
        if len(packages) != 1:
            raise InvalidRequest("A version can only be given for a single package")
        version = constraint.raw if constraint.is_exact else constraint.range_text(" ")
        return [f"{packages[0]}@{version}"]

    def validate(self, request: InstallRequest) -> None:
        self._specs(request)

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        specs = self._specs(request)

        if not self.is_available():
            keep = request.flag("keep-runtime", ctx.settings.keep_runtime)
            bootstrap_runtime(
                ctx,
                scope,
                tool="npm",
                apt_packages=["nodejs", "npm"],
                apk_packages=["nodejs", "npm"],
                keep=keep,
            )

        # Registered after the bootstrap so it runs while npm still exists
        npm_dir = ctx.home / ".npm"

        def _purge_npm_cache():
            ctx.runner.run(["npm", "cache", "clean", "--force"], check=False)
            removed = []
            for name in NPM_CACHE_DIRS:
                removed.extend(remove_path(npm_dir / name))
            return removed

        scope.register("purge npm cache", _purge_npm_cache, path=npm_dir)

        logger.info("Installing npm packages: %s", " ".join(specs))
        ctx.runner.run(["npm", "install", "-g", *specs], needs_root=True)
        return self._installed_version(request.items[0]) if len(specs) == 1 else ""

    def _installed_version(self, package: str) -> str:
        result = self.context.runner.run(
            ["npm", "ls", "-g", "--depth=0", "--json", package], check=False
        )
        try:
            deps = json.loads(result.stdout or "{}").get("dependencies", {})
        except ValueError:
            return ""
        return deps.get(package, {}).get("version", "")
