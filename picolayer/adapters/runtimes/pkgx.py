"""
Pkgx backend — run a tool once in an ephemeral runtime.

pkgx keeps its downloads in ``PKGX_DIR``; pointing it (and the pantry
and XDG cache) into a scratch directory makes the whole runtime
disappear with the scope.  When pkgx itself is missing, it is fetched
from its GitHub release into the same scratch directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from picolayer.adapters.base import Backend
from picolayer.adapters.shell.filesystem import make_scratch_dir
from picolayer.core.errors import InvalidRequest
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.services.install.cleanup import CleanupScope
from picolayer.core.services.release.checksum import verify
from picolayer.core.services.release.extract import ArchiveExtractor

logger = logging.getLogger(__name__)

PKGX_OWNER = "pkgxdev"
PKGX_REPO = "pkgx"


class PkgxBackend(Backend):
    """Execute ``tool[@version] ARGS...`` through pkgx.

    Options:
        working-dir: Directory the tool runs in (must exist).
    """

    @property
    def kind(self) -> BackendKind:
        return BackendKind.PKGX

    def is_available(self) -> bool:
        return True

    def validate(self, request: InstallRequest) -> None:
        working_dir = request.option("working-dir")
        if working_dir and not Path(working_dir).is_dir():
            raise InvalidRequest(f"Working directory does not exist: {working_dir}")

    def tool_spec(self, request: InstallRequest) -> str:
        constraint = request.constraint
        if constraint.is_latest:
            return request.target
        if constraint.is_exact:
            return f"{request.target}@{constraint.raw.lstrip('v')}"
        return f"{request.target}{constraint.range_text('')}"

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        working_dir = request.option("working-dir") or None

        scratch = make_scratch_dir()
        scope.remove_path("remove pkgx scratch directory", scratch)

        pkgx = ctx.runner.which("pkgx") or self._bootstrap(scratch)

        env = {
            "PKGX_DIR": str(scratch / "pkgx" / "tools"),
            "PKGX_PANTRY_DIR": str(scratch / "pkgx" / "pantry"),
            "XDG_CACHE_HOME": str(scratch / "cache"),
        }
        for key in env:
            Path(env[key]).mkdir(parents=True, exist_ok=True)
        env.update(request.env)

        spec = self.tool_spec(request)
        logger.info("Running %s through pkgx", spec)
        ctx.runner.run(
            [pkgx, spec, *request.args],
            env=env,
            cwd=working_dir,
            capture=False,
        )
        # pkgx resolves the version itself and does not report it back
        return ""

    def _bootstrap(self, scratch: Path) -> str:
        """Fetch the pkgx binary into ``scratch``."""
        ctx = self.context
        logger.info("pkgx not found, downloading it")
        asset = ctx.resolver().resolve(PKGX_OWNER, PKGX_REPO, "latest")
        data = ctx.http.get_bytes(asset.url)
        if asset.digest is not None:
            verify(data, asset.digest, asset.name)

        archive = scratch / asset.name
        archive.write_bytes(data)
        extractor = ArchiveExtractor()
        files = extractor.extract(archive, scratch / "bootstrap")
        binary = extractor.find_binary(files, "pkgx")
        logger.debug("Using bootstrapped pkgx %s (%s)", binary, asset.tag)
        return str(binary)
