"""
Runtime bootstrap — install a missing tool through the system package manager.

Used by the npm and pipx backends when their tool is not on PATH.
The package manager's own caches are purged, and unless the runtime
is kept, the bootstrapped packages are removed again on scope close.
"""

from __future__ import annotations

import logging

from picolayer.adapters.base import BackendContext
from picolayer.adapters.packages.apk import apk_add, apk_del, apk_update, register_apk_cache_cleanup
from picolayer.adapters.packages.apt import (
    apt_install,
    apt_purge,
    apt_update,
    register_apt_cache_cleanup,
)
from picolayer.core.errors import InvalidRequest
from picolayer.core.services.install.cleanup import CleanupScope

logger = logging.getLogger(__name__)


def bootstrap_runtime(
    context: BackendContext,
    scope: CleanupScope,
    *,
    tool: str,
    apt_packages: list[str],
    apk_packages: list[str],
    keep: bool,
    autoremove: bool = True,
) -> list[str]:
    """Install ``tool``'s packages with apt-get or apk.

    Returns:
        The packages that were installed.

    Raises:
        InvalidRequest: Neither a Debian-like nor an Alpine system.
    """
    distro = context.get_distro()

    if distro.is_debian_like:
        logger.info("%s not found, installing %s with apt-get", tool, ", ".join(apt_packages))
        register_apt_cache_cleanup(context, scope)
        if not keep:
            scope.register(
                f"remove bootstrapped {tool} runtime",
                lambda: apt_purge(context, apt_packages, autoremove=autoremove),
            )
        apt_update(context)
        apt_install(context, apt_packages)
        return apt_packages

    if distro.is_alpine:
        logger.info("%s not found, installing %s with apk", tool, ", ".join(apk_packages))
        register_apk_cache_cleanup(context, scope)
        if not keep:
            scope.register(
                f"remove bootstrapped {tool} runtime",
                lambda: apk_del(context, apk_packages),
            )
        apk_update(context)
        apk_add(context, apk_packages)
        return apk_packages

    raise InvalidRequest(
        f"Unsupported OS for automatic {tool} installation ({distro.id})"
    )
