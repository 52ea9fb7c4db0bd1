"""
Backend base — the contract between the orchestrator and installers.

Every installation strategy implements this interface.  The
orchestrator only talks to backends through it, and only through the
registry.

Backends raise ``PicolayerError`` subclasses on failure; the
orchestrator turns them into a failed ``InstallResult``.  Anything a
backend leaves behind must be registered on the cleanup scope it is
handed, *before* the step that creates it.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from picolayer.adapters.http.client import HttpClient
from picolayer.adapters.shell.command import CommandRunner
from picolayer.adapters.shell.distro import DistroInfo, detect_distro
from picolayer.adapters.shell.filesystem import under_root
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.models.settings import Settings
from picolayer.core.reliability.retry import RetryPolicy
from picolayer.core.services.install.cleanup import CleanupScope
from picolayer.core.services.release.platform import Platform
from picolayer.core.services.release.resolver import ReleaseResolver


@dataclass
class BackendContext:
    """Collaborators shared by every backend.

    Built once per process from ``Settings``; tests swap in fake
    runners and HTTP clients.
    """

    settings: Settings
    runner: CommandRunner
    http: HttpClient
    platform: Platform | None = None
    distro: DistroInfo | None = field(default=None)

    @classmethod
    def from_settings(cls, settings: Settings) -> BackendContext:
        runner = CommandRunner(timeout=settings.command_timeout)
        http = HttpClient(
            timeout=settings.network_timeout,
            retry=RetryPolicy.from_settings(settings.retry),
            github_token=settings.github_token,
            workers=settings.download_workers,
        )
        return cls(settings=settings, runner=runner, http=http)

    @property
    def root(self) -> Path:
        return self.settings.sysroot

    @property
    def home(self) -> Path:
        return Path(os.environ.get("HOME") or Path.home())

    def path(self, system_path: str) -> Path:
        """A system path (``/var/cache/apt``) below the configured root.

        Every path a backend writes or removes goes through here.
        """
        return under_root(self.root, system_path)

    def get_distro(self) -> DistroInfo:
        if self.distro is None:
            self.distro = detect_distro(self.root)
        return self.distro

    def get_platform(self) -> Platform:
        if self.platform is None:
            self.platform = Platform.detect(self.root)
        return self.platform

    def resolver(self) -> ReleaseResolver:
        return ReleaseResolver(
            self.http,
            api_url=self.settings.github_api_url,
            platform=self.get_platform(),
        )


class Backend(ABC):
    """Abstract base class for all installation backends.

    To create a new backend:
        1. Subclass Backend
        2. Implement kind, is_available, install
        3. Add it to ``BackendRegistry.default``
    """

    def __init__(self, context: BackendContext):
        self.context = context

    @property
    @abstractmethod
    def kind(self) -> BackendKind:
        """The backend identifier (e.g. ``apt-get``, ``gh-release``)."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this backend can run on the current system.

        Should be fast and never raise.
        """

    def validate(self, request: InstallRequest) -> None:
        """Reject requests this backend cannot honour.

        Raises:
            InvalidRequest: With a message naming the problem.
        """

    @abstractmethod
    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        """Perform the installation.

        Returns:
            The resolved version (or tag) that was installed.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind.value!r}>"
