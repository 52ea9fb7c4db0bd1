"""
Pipx backend — Python applications in isolated environments.

Mirrors the npm backend: pipx is bootstrapped when missing, and the
pip and pipx caches are purged afterwards.  Only the pipx tool is
removed with the runtime; the apps it installed keep their interpreter.
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


class PipxBackend(Backend):
    """``pipx install`` for each package.

    Options:
        python: Interpreter passed as ``--python``.
        keep-runtime: Keep a bootstrapped pipx after the install.
    """

    @property
    def kind(self) -> BackendKind:
        return BackendKind.PIPX

    def is_available(self) -> bool:
        return self.context.runner.which("pipx") is not None

    def _specs(self, request: InstallRequest) -> list[str]:
        packages = request.items
        constraint = request.constraint
        if constraint.is_latest:
            return packages
        if len(packages) != 1:
            raise InvalidRequest("A version can only be given for a single package")
        if constraint.is_exact:
            return [f"{packages[0]}=={constraint.raw.lstrip('v')}"]
        return [f"{packages[0]}{constraint.range_text()}"]

    def validate(self, request: InstallRequest) -> None:
        self._specs(request)

    def _env(self) -> dict[str, str]:
        ctx = self.context
        return {
            "PIPX_HOME": str(ctx.path(ctx.settings.pipx_home)),
            "PIPX_BIN_DIR": str(ctx.path(ctx.settings.pipx_bin_dir)),
            "PIP_NO_CACHE_DIR": "1",
        }

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        specs = self._specs(request)

        if not self.is_available():
            keep = request.flag("keep-runtime", ctx.settings.keep_runtime)
            bootstrap_runtime(
                ctx,
                scope,
                tool="pipx",
                apt_packages=["pipx"],
                apk_packages=["pipx"],
                keep=keep,
                autoremove=False,
            )

        pipx_home = ctx.path(ctx.settings.pipx_home)
        cache_dirs = [
            ctx.home / ".cache" / "pip",
            ctx.home / ".cache" / "pipx",
            ctx.home / ".local" / "state" / "pipx" / "log",
            pipx_home / ".cache",
            pipx_home / "logs",
        ]

        def _purge_caches():
            removed = []
            for path in cache_dirs:
                removed.extend(remove_path(path))
            return removed

        scope.register("purge pip and pipx caches", _purge_caches)

        python = request.option("python")
        for spec in specs:
            cmd = ["pipx", "install", "--pip-args=--no-cache-dir", spec]
            if python:
                cmd.extend(["--python", python])
            logger.info("Installing pipx package: %s", spec)
            ctx.runner.run(cmd, needs_root=True, env=self._env())

        return self._installed_version(request.items[0]) if len(specs) == 1 else ""

    def _installed_version(self, package: str) -> str:
        result = self.context.runner.run(
            ["pipx", "list", "--json"], env=self._env(), check=False
        )
        try:
            venvs = json.loads(result.stdout or "{}").get("venvs", {})
        except ValueError:
            return ""
        meta = venvs.get(package, {}).get("metadata", {}).get("main_package", {})
        return meta.get("package_version", "")
