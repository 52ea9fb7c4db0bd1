"""
Apt backends — ``apt-get``, ``apt`` and ``aptitude`` on Debian-like systems.

Cache purges are registered before the first ``update`` so the index
lists and downloaded ``.deb`` archives never survive, whatever happens
afterwards.  Packages pulled in only to add PPAs are transient and
purged again.
"""

from __future__ import annotations

import logging

from picolayer.adapters.base import Backend, BackendContext
from picolayer.adapters.shell.filesystem import purge_directory
from picolayer.core.errors import InvalidRequest
from picolayer.core.models.request import BackendKind, InstallRequest, split_list
from picolayer.core.services.install.cleanup import CleanupScope

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

PPA_SUPPORT_PACKAGES = ("software-properties-common",)
PPA_SUPPORT_PACKAGES_DEBIAN = ("python3-launchpadlib",)


# ── Shared apt helpers ──────────────────────────────────────────


def require_debian_like(context: BackendContext, tool: str) -> None:
    distro = context.get_distro()
    if not distro.is_debian_like:
        raise InvalidRequest(
            f"{tool} requires a Debian-based distribution (found {distro.id})"
        )


def register_apt_cache_cleanup(context: BackendContext, scope: CleanupScope) -> None:
    """Purge index lists and downloaded archives on scope close."""
    lists = context.path("/var/lib/apt/lists")
    archives = context.path("/var/cache/apt/archives")
    apt_cache = context.path("/var/cache/apt")

    scope.purge_directory("purge apt index cache", lists)

    def _remove_archives():
        context.runner.run(["apt-get", "clean"], needs_root=True, env=APT_ENV)
        removed = purge_directory(archives, ("*.deb", "partial/*"))
        removed.extend(purge_directory(apt_cache, ("*.bin",)))
        return removed

    scope.register("remove downloaded package archives", _remove_archives, path=archives)


def apt_update(context: BackendContext, tool: str = "apt-get") -> None:
    logger.info("Updating package lists")
    context.runner.run([tool, "update", "-y"], needs_root=True, env=APT_ENV)


def apt_install(
    context: BackendContext,
    packages: list[str],
    tool: str = "apt-get",
) -> None:
    logger.info("Installing with %s: %s", tool, " ".join(packages))
    context.runner.run(
        [tool, "install", "-y", "--no-install-recommends", *packages],
        needs_root=True,
        env=APT_ENV,
    )


def apt_purge(
    context: BackendContext,
    packages: list[str],
    autoremove: bool = True,
) -> None:
    extra = ["--auto-remove"] if autoremove else []
    context.runner.run(
        ["apt-get", "purge", "-y", *extra, *packages],
        needs_root=True,
        env=APT_ENV,
    )


def dpkg_installed(context: BackendContext, package: str) -> bool:
    result = context.runner.run(
        ["dpkg-query", "-W", "-f=${Status}", package], check=False
    )
    return result.ok and "install ok installed" in result.stdout


def dpkg_version(context: BackendContext, package: str) -> str:
    name = package.split("=", 1)[0]
    result = context.runner.run(
        ["dpkg-query", "-W", "-f=${Version}", name], check=False
    )
    return result.stdout.strip() if result.ok else ""


def pin_packages(request: InstallRequest) -> list[str]:
    """Apply an exact version as ``pkg=version``; ranges are rejected."""
    packages = request.items
    constraint = request.constraint
    if constraint.is_latest:
        return packages
    if constraint.is_range:
        raise InvalidRequest(
            f"{request.kind} does not support version ranges ({constraint})"
        )
    if len(packages) != 1:
        raise InvalidRequest("A version can only be given for a single package")
    return [f"{packages[0]}={constraint.raw}"]


def installed_versions(context: BackendContext, packages: list[str]) -> str:
    versions = [(p.split("=", 1)[0], dpkg_version(context, p)) for p in packages]
    if len(versions) == 1:
        return versions[0][1]
    return ",".join(f"{name}={version}" for name, version in versions)


# ── Backends ────────────────────────────────────────────────────


class AptBackend(Backend):
    """``apt-get`` / ``apt`` installs.

    Options:
        ppas: Comma-separated PPAs (Ubuntu only unless forced).
        force-ppas-on-non-ubuntu: Add the PPAs on Debian too.
    """

    def __init__(self, context: BackendContext, frontend: str = "apt-get"):
        super().__init__(context)
        if frontend not in ("apt-get", "apt"):
            raise ValueError(f"Unsupported apt front-end: {frontend}")
        self.frontend = frontend

    @property
    def kind(self) -> BackendKind:
        return BackendKind.APT if self.frontend == "apt" else BackendKind.APT_GET

    def is_available(self) -> bool:
        return self.context.runner.which(self.frontend) is not None

    def validate(self, request: InstallRequest) -> None:
        pin_packages(request)

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        require_debian_like(ctx, self.frontend)
        if not self.is_available():
            raise InvalidRequest(f"{self.frontend} command not found in PATH")
        packages = pin_packages(request)

        ppas = self._effective_ppas(request)

        register_apt_cache_cleanup(ctx, scope)
        apt_update(ctx, self.frontend)

        if ppas:
            self._add_ppas(ppas, scope)
            apt_update(ctx, self.frontend)

        apt_install(ctx, packages, self.frontend)
        return installed_versions(ctx, packages)

    def _effective_ppas(self, request: InstallRequest) -> list[str]:
        ppas = split_list(request.option("ppas"))
        if not ppas:
            return []
        if self.context.get_distro().is_ubuntu or request.flag("force-ppas-on-non-ubuntu"):
            return ppas
        logger.warning("PPAs are ignored on non-Ubuntu distros!")
        logger.info("Use --force-ppas-on-non-ubuntu to include them anyway.")
        return []

    def _add_ppas(self, ppas: list[str], scope: CleanupScope) -> None:
        ctx = self.context
        support = list(PPA_SUPPORT_PACKAGES)
        if not ctx.get_distro().is_ubuntu:
            support.extend(PPA_SUPPORT_PACKAGES_DEBIAN)

        transient = [p for p in support if not dpkg_installed(ctx, p)]
        if transient:
            # Registered before install so a half-finished install is still undone
            scope.register(
                "remove PPA support packages",
                lambda: apt_purge(ctx, transient),
            )
            apt_install(ctx, transient)

        for ppa in ppas:
            ref = ppa if ppa.startswith("ppa:") else f"ppa:{ppa}"
            logger.info("Adding PPA: %s", ref)
            ctx.runner.run(["add-apt-repository", "-y", ref], needs_root=True, env=APT_ENV)


class AptitudeBackend(Backend):
    """``aptitude`` installs.  Aptitude itself is transient when missing."""

    @property
    def kind(self) -> BackendKind:
        return BackendKind.APTITUDE

    def is_available(self) -> bool:
        return self.context.runner.which("apt-get") is not None

    def validate(self, request: InstallRequest) -> None:
        pin_packages(request)

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        require_debian_like(ctx, "aptitude")
        packages = pin_packages(request)

        register_apt_cache_cleanup(ctx, scope)
        apt_update(ctx)

        if ctx.runner.which("aptitude") is None:
            logger.info("Installing aptitude")
            scope.register("remove aptitude", lambda: apt_purge(ctx, ["aptitude"]))
            apt_install(ctx, ["aptitude"])

        # Must run while aptitude still exists, so registered after its removal
        scope.run_command(
            "aptitude clean", ctx.runner, ["aptitude", "clean"], needs_root=True, env=APT_ENV
        )

        logger.info("Installing with aptitude: %s", " ".join(packages))
        ctx.runner.run(["aptitude", "install", "-y", *packages], needs_root=True, env=APT_ENV)
        return installed_versions(ctx, packages)
