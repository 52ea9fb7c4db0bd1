"""
GitHub release backend — install binaries from release assets.

Pipeline:  resolve → download (concurrent) → verify → extract → install.

Every asset is verified against its expected digest before a single
byte is written to disk.  Archives are unpacked in a scratch directory
that is removed on scope close, so only the installed binaries remain.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from picolayer.adapters.base import Backend, BackendContext
from picolayer.adapters.shell.filesystem import make_scratch_dir
from picolayer.core.errors import ArtifactError, InvalidRequest
from picolayer.core.models.release import Digest, ReleaseAsset
from picolayer.core.models.request import BackendKind, InstallRequest, split_list
from picolayer.core.services.install.cleanup import CleanupScope
from picolayer.core.services.release.checksum import verify
from picolayer.core.services.release.extract import ArchiveExtractor

logger = logging.getLogger(__name__)


def split_repo(target: str) -> tuple[str, str]:
    """``owner/repo`` → ``("owner", "repo")``."""
    parts = target.strip().strip("/").split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidRequest(f"Expected 'owner/repo', got {target!r}")
    return parts[0], parts[1]


class GhReleaseBackend(Backend):
    """Binaries from GitHub releases.

    Options:
        binary: Comma-separated binary names (default: the repo name).
        install-dir: Destination directory.
        asset-pattern: Regex restricting asset names; ``{os}``/``{arch}``
            expand to the platform's spellings.
        checksum: Expected ``algorithm:hex`` digest (single asset only).
        verify-checksum: Fail when no digest is known.
        include-prerelease: Let ``latest`` and ranges pick prereleases.
    """

    def __init__(self, context: BackendContext, extractor: ArchiveExtractor | None = None):
        super().__init__(context)
        self.extractor = extractor or ArchiveExtractor()

    @property
    def kind(self) -> BackendKind:
        return BackendKind.GH_RELEASE

    def is_available(self) -> bool:
        return True

    def validate(self, request: InstallRequest) -> None:
        split_repo(request.target)
        checksum = request.option("checksum")
        if checksum:
            Digest.parse(checksum)

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        owner, repo = split_repo(request.target)
        binaries = split_list(request.option("binary")) or [repo]
        install_dir = ctx.path(os.path.abspath(request.option("install-dir") or ctx.settings.install_dir))

        scratch = make_scratch_dir()
        scope.remove_path("remove scratch directory", scratch)

        assets = ctx.resolver().resolve_many(
            owner,
            repo,
            request.version,
            binaries,
            asset_pattern=request.option("asset-pattern"),
            include_prerelease=request.flag("include-prerelease"),
        )
        logger.info(
            "Downloading %s from %s/%s %s",
            ", ".join(a.name for a in assets), owner, repo, assets[0].tag,
        )
        payloads = ctx.http.download_all([a.url for a in assets])

        # Verify everything before anything touches the disk
        for asset, data in zip(assets, payloads):
            self._verify(request, asset, data, multiple=len(assets) > 1)

        files: list[Path] = []
        for index, (asset, data) in enumerate(zip(assets, payloads)):
            archive = scratch / asset.name
            scope.remove_path(f"remove downloaded archive {asset.name}", archive)
            archive.write_bytes(data)
            files.extend(self.extractor.extract(archive, scratch / f"extract-{index}"))

        self.extractor.install_binaries(files, binaries, install_dir, runner=ctx.runner)
        return assets[0].tag

    def _verify(
        self,
        request: InstallRequest,
        asset: ReleaseAsset,
        data: bytes,
        multiple: bool,
    ) -> None:
        user_checksum = request.option("checksum")
        if user_checksum and multiple:
            raise InvalidRequest("--checksum can only be used when a single asset is installed")

        expected = Digest.parse(user_checksum) if user_checksum else asset.digest
        if expected is not None:
            verify(data, expected, asset.name)
            logger.info("Verified %s (%s)", asset.name, expected.algorithm)
            return

        if request.flag("verify-checksum"):
            raise ArtifactError(
                f"No checksum published for {asset.name}; cannot verify"
            )
        logger.warning("No checksum published for %s; installing unverified", asset.name)
