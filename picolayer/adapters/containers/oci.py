"""
OCI registry client — pull a single-layer artifact over the v2 HTTP API.

Devcontainer features are published as OCI artifacts whose first layer
is a tarball of the feature directory.  Only what that needs is here:
reference parsing, manifest and blob fetches, registry auth challenges
(anonymous, basic, bearer) and digest verification of the layer.
"""

from __future__ import annotations

import base64
import logging
import re
import urllib.parse
from dataclasses import dataclass

from picolayer.adapters.http.client import HttpClient, HttpResponse
from picolayer.core.errors import ArtifactError, FetchFailed, InvalidRequest
from picolayer.core.models.release import Digest
from picolayer.core.services.release.checksum import verify

logger = logging.getLogger(__name__)

DOCKER_HUB = "registry-1.docker.io"

MANIFEST_TYPES = (
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.oci.image.index.v1+json",
)

LAYER_TYPES = (
    "application/vnd.devcontainers.layer.v1+tar",
    "application/vnd.oci.image.layer.v1.tar",
    "application/vnd.oci.image.layer.v1.tar+gzip",
    "application/vnd.docker.image.rootfs.diff.tar",
    "application/vnd.docker.image.rootfs.diff.tar.gzip",
)

_CHALLENGE_RE = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class OciReference:
    """``registry/repository[:tag][@digest]``."""

    registry: str
    repository: str
    tag: str = "latest"
    digest: str | None = None

    @classmethod
    def parse(cls, ref: str) -> OciReference:
        text = ref.strip()
        if not text or " " in text:
            raise InvalidRequest(f"Invalid OCI reference: {ref!r}")

        digest = None
        if "@" in text:
            text, digest = text.split("@", 1)

        first, _, rest = text.partition("/")
        if rest and ("." in first or ":" in first or first == "localhost"):
            registry, path = first, rest
        else:
            registry, path = DOCKER_HUB, text
            if "/" not in path:
                path = f"library/{path}"

        tag = "latest"
        name, sep, maybe_tag = path.rpartition(":")
        if sep and "/" not in maybe_tag:
            path, tag = name, maybe_tag

        if not path or not re.match(r"^[a-z0-9]+([._/-][a-z0-9]+)*$", path):
            raise InvalidRequest(f"Invalid OCI repository in {ref!r}")
        return cls(registry=registry, repository=path, tag=tag, digest=digest)

    @property
    def reference(self) -> str:
        return self.digest or self.tag

    def __str__(self) -> str:
        base = f"{self.registry}/{self.repository}:{self.tag}"
        return f"{base}@{self.digest}" if self.digest else base


class OciClient:
    """Minimal registry client.

    Args:
        http: Shared HTTP client (retry, timeouts).
        username, password: Basic credentials, also used for token exchange.
        token: A ready bearer token; skips the auth challenge.
    """

    def __init__(
        self,
        http: HttpClient,
        *,
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
    ):
        self.http = http
        self._username = username
        self._password = password
        self._token = token

    def _base(self, ref: OciReference) -> str:
        scheme = "http" if ref.registry.startswith("localhost") else "https"
        return f"{scheme}://{ref.registry}/v2/{ref.repository}"

    def _basic(self) -> str | None:
        if self._username and self._password:
            raw = f"{self._username}:{self._password}".encode()
            return "Basic " + base64.b64encode(raw).decode()
        return None

    def _auth_header(self) -> dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        basic = self._basic()
        return {"Authorization": basic} if basic else {}

    def _get(self, url: str, accept: str) -> HttpResponse:
        headers = {"Accept": accept, **self._auth_header()}
        response = self.http.request(url, headers=headers, accept_status=(401,))
        if response.status != 401:
            return response

        challenge = response.headers.get("www-authenticate", "")
        scheme = challenge.split(" ", 1)[0].lower()
        if scheme == "bearer":
            self._token = self._exchange_token(challenge)
        elif scheme == "basic" and self._basic() is None:
            raise FetchFailed(f"Registry requires credentials: {url}", url=url, status=401)

        headers = {"Accept": accept, **self._auth_header()}
        response = self.http.request(url, headers=headers, accept_status=(401,))
        if response.status == 401:
            raise FetchFailed(f"Registry authentication failed: {url}", url=url, status=401)
        return response

    def _exchange_token(self, challenge: str) -> str:
        params = dict(_CHALLENGE_RE.findall(challenge))
        realm = params.pop("realm", "")
        if not realm:
            raise FetchFailed(f"Malformed registry auth challenge: {challenge!r}")
        url = f"{realm}?{urllib.parse.urlencode(params)}" if params else realm
        headers = {}
        basic = self._basic()
        if basic:
            headers["Authorization"] = basic
        logger.debug("Requesting registry token from %s", realm)
        data = self.http.request(url, headers=headers).json()
        token = data.get("token") or data.get("access_token")
        if not token:
            raise FetchFailed(f"Registry token endpoint returned no token: {realm}")
        return token

    def get_manifest(self, ref: OciReference) -> dict:
        url = f"{self._base(ref)}/manifests/{ref.reference}"
        manifest = self._get(url, ", ".join(MANIFEST_TYPES)).json()
        if "manifests" in manifest:
            # An index: follow the first entry
            entries = manifest.get("manifests") or []
            if not entries:
                raise ArtifactError(f"Empty image index for {ref}")
            url = f"{self._base(ref)}/manifests/{entries[0]['digest']}"
            manifest = self._get(url, ", ".join(MANIFEST_TYPES)).json()
        return manifest

    def pull_layer(self, ref: OciReference) -> bytes:
        """Return the verified bytes of the artifact's first accepted layer."""
        manifest = self.get_manifest(ref)
        layers = [
            layer for layer in manifest.get("layers", [])
            if layer.get("mediaType") in LAYER_TYPES
        ]
        if not layers:
            raise ArtifactError(f"{ref} has no usable layers")
        layer = layers[0]

        digest = Digest.parse(layer["digest"])
        logger.info("Pulling %s (%s)", ref, layer["digest"][:19])
        url = f"{self._base(ref)}/blobs/{layer['digest']}"
        data = self._get(url, "application/octet-stream").body
        verify(data, digest, str(ref))
        return data
