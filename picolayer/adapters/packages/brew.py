"""
Brew backend — Homebrew formulae.

Homebrew refuses to run as root, so nothing here is elevated.
"""

from __future__ import annotations

import logging
from pathlib import Path

from picolayer.adapters.base import Backend
from picolayer.adapters.shell.filesystem import remove_path
from picolayer.core.errors import InvalidRequest
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.services.install.cleanup import CleanupScope

logger = logging.getLogger(__name__)

BREW_ENV = {
    "HOMEBREW_NO_AUTO_UPDATE": "1",
    "HOMEBREW_NO_INSTALL_CLEANUP": "1",
    "HOMEBREW_NO_ANALYTICS": "1",
    "HOMEBREW_NO_ENV_HINTS": "1",
}


class BrewBackend(Backend):
    @property
    def kind(self) -> BackendKind:
        return BackendKind.BREW

    def is_available(self) -> bool:
        return self.context.runner.which("brew") is not None

    def validate(self, request: InstallRequest) -> None:
        if request.constraint.is_range:
            raise InvalidRequest("brew does not support version ranges")

    def _formulae(self, request: InstallRequest) -> list[str]:
        packages = request.items
        constraint = request.constraint
        if constraint.is_latest:
            return packages
        if len(packages) != 1:
            raise InvalidRequest("A version can only be given for a single package")
        # Versioned formulae are named formula@version
        return [f"{packages[0]}@{constraint.raw}"]

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        if not self.is_available():
            raise InvalidRequest("Homebrew not installed or not in PATH")
        formulae = self._formulae(request)

        cache = ctx.runner.run(["brew", "--cache"], env=BREW_ENV, check=False).stdout.strip()
        if cache:
            cache_dir = Path(cache)
            scope.register(
                "remove brew download cache", lambda: remove_path(cache_dir), path=cache_dir
            )
        scope.run_command(
            "brew cleanup",
            ctx.runner,
            ["brew", "cleanup", "--prune=all", "-s"],
            env=BREW_ENV,
        )

        logger.info("Updating Homebrew")
        ctx.runner.run(["brew", "update"], env=BREW_ENV)
        logger.info("Installing Homebrew packages: %s", " ".join(formulae))
        ctx.runner.run(["brew", "install", *formulae], env=BREW_ENV)

        versions = []
        for formula in formulae:
            out = ctx.runner.run(
                ["brew", "list", "--versions", formula], env=BREW_ENV, check=False
            ).stdout.split()
            versions.append(out[-1] if len(out) > 1 else "")
        return versions[0] if len(versions) == 1 else ",".join(
            f"{f}={v}" for f, v in zip(formulae, versions)
        )
