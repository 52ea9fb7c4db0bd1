"""
Release resolution — turn ``owner/repo`` + version into assets.

Talks to the GitHub REST API through ``HttpClient``:

    latest → newest published, non-draft, non-prerelease release
    tag    → GET /repos/{owner}/{repo}/releases/tags/{tag}
    range  → highest release whose tag satisfies the constraint

Asset selection is a pure ranking over asset names, so identical
inputs always yield the identical asset.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from picolayer.adapters.http.client import HttpClient
from picolayer.core.errors import (
    AmbiguousAsset,
    FetchFailed,
    InvalidRequest,
    NoMatchingAsset,
    ReleaseNotFound,
)
from picolayer.core.models.release import Digest, ReleaseAsset
from picolayer.core.models.version import VersionConstraint, parse_version
from picolayer.core.services.release.checksum import (
    checksum_asset_candidates,
    find_digest,
    is_checksum_file,
    parse_checksum_file,
)
from picolayer.core.services.release.platform import (
    Platform,
    arch_match,
    os_match,
    pattern_alternation,
)

logger = logging.getLogger(__name__)

_PER_PAGE = 100
_MAX_PAGES = 10

# Never installable: signatures, checksums, metadata, OS packages
_EXCLUDED_SUFFIXES = (
    ".sha1", ".sha256", ".sha256sum", ".sha512", ".sha512sum", ".md5",
    ".asc", ".sig", ".pem", ".crt", ".cert", ".sbom", ".spdx", ".json",
    ".jsonl", ".txt", ".yaml", ".yml", ".deb", ".rpm", ".apk", ".msi",
    ".dmg", ".pkg", ".sh", ".vsix", ".nupkg", ".whl",
)

# Archive format preference (higher wins)
_FORMAT_PREFERENCE = (
    ((".tar.gz", ".tgz"), 5),
    ((".tar.xz", ".txz"), 4),
    ((".tar.bz2", ".tbz2", ".tar.zst", ".tar"), 3),
    ((".zip",), 2),
)


def format_score(name: str) -> int:
    lowered = name.lower()
    for suffixes, score in _FORMAT_PREFERENCE:
        if lowered.endswith(suffixes):
            return score
    return 1


@dataclass
class Release:
    """The parts of a GitHub release payload picolayer uses."""

    tag: str
    published_at: str = ""
    draft: bool = False
    prerelease: bool = False
    assets: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Release:
        return cls(
            tag=data.get("tag_name", ""),
            published_at=data.get("published_at") or "",
            draft=bool(data.get("draft")),
            prerelease=bool(data.get("prerelease")),
            assets=list(data.get("assets") or []),
        )

    @property
    def asset_names(self) -> list[str]:
        return [a.get("name", "") for a in self.assets]

    def asset(self, name: str) -> dict[str, Any] | None:
        return next((a for a in self.assets if a.get("name") == name), None)


class ReleaseResolver:
    """Resolve GitHub releases and pick platform assets.

    Args:
        http: Client used for every API call.
        api_url: GitHub API base (no trailing slash).
        platform: Target platform; detected when omitted.
    """

    def __init__(
        self,
        http: HttpClient,
        api_url: str = "https://api.github.com",
        platform: Platform | None = None,
    ):
        self.http = http
        self.api_url = api_url.rstrip("/")
        self.platform = platform or Platform.detect()

    # ── Releases ────────────────────────────────────────────────

    def _repo_url(self, owner: str, repo: str) -> str:
        return f"{self.api_url}/repos/{owner}/{repo}"

    def list_releases(self, owner: str, repo: str) -> list[Release]:
        releases: list[Release] = []
        for page in range(1, _MAX_PAGES + 1):
            url = f"{self._repo_url(owner, repo)}/releases?per_page={_PER_PAGE}&page={page}"
            try:
                batch = self.http.get_json(url)
            except FetchFailed as e:
                if e.status == 404:
                    raise ReleaseNotFound(f"Repository {owner}/{repo} not found") from e
                raise
            releases.extend(Release.from_api(item) for item in batch)
            if len(batch) < _PER_PAGE:
                break
        return releases

    def release_by_tag(self, owner: str, repo: str, tag: str) -> Release:
        """Fetch the release for ``tag``, trying with and without a ``v`` prefix."""
        candidates = [tag]
        alt = tag[1:] if tag.startswith("v") else f"v{tag}"
        candidates.append(alt)

        for candidate in candidates:
            url = f"{self._repo_url(owner, repo)}/releases/tags/{candidate}"
            try:
                return Release.from_api(self.http.get_json(url))
            except FetchFailed as e:
                if e.status != 404:
                    raise
                logger.debug("No release tagged %s in %s/%s", candidate, owner, repo)
        raise ReleaseNotFound(f"Release {tag} not found in {owner}/{repo}")

    def find_release(
        self,
        owner: str,
        repo: str,
        constraint: VersionConstraint,
        include_prerelease: bool = False,
    ) -> Release:
        if constraint.is_exact:
            return self.release_by_tag(owner, repo, constraint.raw)

        releases = [
            r for r in self.list_releases(owner, repo)
            if not r.draft and (include_prerelease or not r.prerelease)
        ]

        if constraint.is_latest:
            published = [r for r in releases if r.published_at]
            if not published:
                raise ReleaseNotFound(f"No published releases in {owner}/{repo}")
            return max(published, key=lambda r: (r.published_at, r.tag))

        matching = [
            r for r in releases
            if parse_version(r.tag.lstrip("v")) is not None and constraint.matches(r.tag)
        ]
        if not matching:
            raise ReleaseNotFound(
                f"No release of {owner}/{repo} satisfies {constraint}"
            )
        return max(matching, key=lambda r: (parse_version(r.tag.lstrip("v")), r.tag))

    # ── Asset selection ─────────────────────────────────────────

    def _compile_pattern(self, asset_pattern: str) -> re.Pattern[str]:
        expanded = asset_pattern.replace(
            "{os}", pattern_alternation(self.platform.os_tokens())
        ).replace(
            "{arch}", pattern_alternation(self.platform.arch_tokens())
        )
        try:
            return re.compile(expanded, re.IGNORECASE)
        except re.error as e:
            raise InvalidRequest(f"Invalid asset pattern {asset_pattern!r}: {e}") from e

    def score(self, name: str) -> tuple[int, int, int] | None:
        """Rank one asset name for this platform; None when unusable."""
        lowered = name.lower()
        if lowered.endswith(_EXCLUDED_SUFFIXES) or is_checksum_file(lowered):
            return None
        if self.platform.os != "windows" and lowered.endswith(".exe"):
            return None
        if self.platform.foreign_os(lowered) or self.platform.foreign_arch(lowered):
            return None
        libc = self.platform.libc_score(lowered)
        if libc is None:
            return None

        if self.platform.triple in lowered:
            tier = 5
        else:
            tier = arch_match(self.platform.arch, lowered) + os_match(self.platform.os, lowered)
        return tier, libc, format_score(lowered)

    def select_asset(
        self,
        names: list[str],
        asset_pattern: str = "",
        contains: str = "",
    ) -> str:
        """Pick the single best asset name.

        Raises:
            NoMatchingAsset: Nothing usable for this platform.
            AmbiguousAsset: Several assets share the top score.
        """
        candidates = list(names)
        if asset_pattern:
            rx = self._compile_pattern(asset_pattern)
            candidates = [n for n in candidates if rx.search(n)]
        if contains:
            candidates = [n for n in candidates if contains.lower() in n.lower()]

        scored = [(s, n) for n in candidates if (s := self.score(n)) is not None]
        if not scored:
            raise NoMatchingAsset(
                f"No asset for {self.platform.triple} among: {', '.join(sorted(names)) or 'none'}"
            )

        best = max(s for s, _ in scored)
        top = sorted(n for s, n in scored if s == best)
        if len(top) > 1:
            raise AmbiguousAsset(top)
        logger.debug("Selected asset %s (score %s)", top[0], best)
        return top[0]

    # ── Public API ──────────────────────────────────────────────

    def resolve(
        self,
        owner: str,
        repo: str,
        version_spec: str = "latest",
        *,
        asset_pattern: str = "",
        include_prerelease: bool = False,
    ) -> ReleaseAsset:
        """Resolve one release asset for this platform."""
        assets = self.resolve_many(
            owner,
            repo,
            version_spec,
            binaries=[],
            asset_pattern=asset_pattern,
            include_prerelease=include_prerelease,
        )
        return assets[0]

    def resolve_many(
        self,
        owner: str,
        repo: str,
        version_spec: str = "latest",
        binaries: list[str] | None = None,
        *,
        asset_pattern: str = "",
        include_prerelease: bool = False,
    ) -> list[ReleaseAsset]:
        """Resolve the assets carrying ``binaries``.

        Each binary prefers an asset whose name contains it, falling back
        to the shared best asset.  Duplicates are merged, order kept.
        """
        constraint = VersionConstraint.parse(version_spec)
        release = self.find_release(owner, repo, constraint, include_prerelease)
        names = release.asset_names
        logger.info("Resolved %s/%s %s → %s", owner, repo, constraint, release.tag)

        shared: str | None = None
        chosen: list[str] = []
        for binary in binaries or [""]:
            name: str | None = None
            if binary:
                try:
                    name = self.select_asset(names, asset_pattern, contains=binary)
                except NoMatchingAsset:
                    name = None
            if name is None:
                if shared is None:
                    shared = self.select_asset(names, asset_pattern)
                name = shared
            if name not in chosen:
                chosen.append(name)

        return [self._build_asset(release, name) for name in chosen]

    def _build_asset(self, release: Release, name: str) -> ReleaseAsset:
        data = release.asset(name) or {}
        return ReleaseAsset(
            tag=release.tag,
            name=name,
            url=data.get("browser_download_url", ""),
            checksum=self._published_digest(release, name, data),
            platform=self.platform.triple,
            size=int(data.get("size") or 0),
        )

    def _published_digest(
        self, release: Release, name: str, data: dict[str, Any]
    ) -> str | None:
        """Digest from the asset's ``digest`` field or a checksum file."""
        raw = data.get("digest")
        if raw:
            try:
                return str(Digest.parse(raw))
            except InvalidRequest:
                logger.debug("Ignoring malformed digest %r on %s", raw, name)

        for candidate in checksum_asset_candidates(name, release.asset_names):
            source = release.asset(candidate) or {}
            url = source.get("browser_download_url")
            if not url:
                continue
            try:
                text = self.http.get_text(url)
            except FetchFailed as e:
                logger.warning("Cannot read checksum file %s: %s", candidate, e)
                continue
            digest = find_digest(parse_checksum_file(text), name)
            if digest:
                logger.debug("Checksum for %s from %s", name, candidate)
                return str(digest)
        return None
