"""
Devcontainer feature backend — run one feature's install script.

A feature is fetched from an OCI registry, an HTTPS tarball or a local
directory into scratch space, its options are resolved against the
defaults in ``devcontainer-feature.json``, and ``install.sh`` runs with
them exported as upper-cased environment variables.
"""

from __future__ import annotations

import logging
import pwd
import re
import shutil
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from picolayer.adapters.base import Backend
from picolayer.adapters.containers.oci import OciClient, OciReference
from picolayer.adapters.shell.filesystem import make_scratch_dir
from picolayer.core.errors import ArtifactError, InvalidRequest
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.services.install.cleanup import CleanupScope
from picolayer.core.services.release.extract import ArchiveExtractor

logger = logging.getLogger(__name__)

METADATA_FILE = "devcontainer-feature.json"
DEFAULT_SCRIPT = "install.sh"
BASE_USERS = ("vscode", "node", "codespace")
PROFILE_DIR = "/etc/profile.d"


# ── Metadata ────────────────────────────────────────────────────


class FeatureOption(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = "string"
    default: str | bool | int | float | None = None
    description: str = ""


class FeatureMetadata(BaseModel):
    """The parts of ``devcontainer-feature.json`` picolayer uses."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    version: str | None = None
    name: str | None = None
    description: str | None = None
    options: dict[str, FeatureOption] = Field(default_factory=dict)
    container_env: dict[str, str] = Field(default_factory=dict, alias="containerEnv")
    entrypoint: str | None = None

    def resolve_options(self, provided: dict[str, str]) -> dict[str, str]:
        """Provided values win; missing ones fall back to declared defaults."""
        resolved = dict(provided)
        for name, option in self.options.items():
            if name in resolved or option.default is None:
                continue
            default = option.default
            if isinstance(default, bool):
                resolved[name] = "true" if default else "false"
            else:
                resolved[name] = str(default)
        return resolved


def option_env_name(name: str) -> str:
    """Option id → environment variable (``installTools`` → ``INSTALLTOOLS``)."""
    return re.sub(r"[^A-Za-z0-9_]", "_", name).upper()


def load_metadata(feature_dir: Path) -> FeatureMetadata:
    path = feature_dir / METADATA_FILE
    if not path.is_file():
        raise ArtifactError(f"Feature metadata file not found: {METADATA_FILE}")
    try:
        return FeatureMetadata.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise ArtifactError(f"Invalid {METADATA_FILE}: {e}") from e


def resolve_remote_user(preferred: str = "") -> tuple[str, str]:
    """Pick the user the feature installs for: ``(name, home)``.

    Order: ``preferred``, then the first existing of vscode/node/codespace,
    then whoever has UID 1000, then root.
    """
    candidates = [preferred] if preferred else []
    candidates.extend(BASE_USERS)
    for name in candidates:
        try:
            entry = pwd.getpwnam(name)
        except KeyError:
            if name == preferred:
                logger.warning("User '%s' not found, attempting fallback", name)
            continue
        return entry.pw_name, entry.pw_dir

    try:
        entry = pwd.getpwuid(1000)
        return entry.pw_name, entry.pw_dir
    except KeyError:
        return "root", "/root"


# ── Backend ─────────────────────────────────────────────────────


class DevcontainerFeatureBackend(Backend):
    """Install one devcontainer feature.

    Options:
        script: Script to run inside the feature (default ``install.sh``).
        remote-user: User the feature targets.
        registry-username, registry-password, registry-token: Registry auth.
    """

    @property
    def kind(self) -> BackendKind:
        return BackendKind.DEVCONTAINER_FEATURE

    def is_available(self) -> bool:
        return self.context.runner.which("bash") is not None

    def validate(self, request: InstallRequest) -> None:
        script = request.option("script", DEFAULT_SCRIPT)
        parts = Path(script).parts
        if Path(script).is_absolute() or ".." in parts:
            raise InvalidRequest(f"Feature script must be inside the feature: {script!r}")
        if self._is_local(request.target) or self._is_url(request.target):
            return
        OciReference.parse(request.target)

    @staticmethod
    def _is_url(target: str) -> bool:
        return target.startswith(("https://", "http://"))

    @staticmethod
    def _is_local(target: str) -> bool:
        return target.startswith((".", "/")) or Path(target).is_dir()

    def install(self, request: InstallRequest, scope: CleanupScope) -> str:
        ctx = self.context
        scratch = make_scratch_dir()
        scope.remove_path("remove feature scratch directory", scratch)

        feature_dir = self._fetch(request, scratch)
        feature = load_metadata(feature_dir)
        logger.info("Feature: %s v%s", feature.id, feature.version or "unknown")

        user, home = resolve_remote_user(request.option("remote-user"))
        logger.info("Installing for user: %s (home: %s)", user, home)

        env = dict(request.env)
        env.update({
            "_REMOTE_USER": user,
            "_REMOTE_USER_HOME": home,
            "_CONTAINER_USER": user,
            "_CONTAINER_USER_HOME": home,
        })
        for name, value in feature.resolve_options(request.parameters).items():
            env[option_env_name(name)] = value

        self._run_script(feature_dir, request.option("script", DEFAULT_SCRIPT), env)
        self._write_container_env(feature)
        self._run_entrypoint(feature)
        return feature.version or ""

    # ── Steps ───────────────────────────────────────────────────

    def _fetch(self, request: InstallRequest, scratch: Path) -> Path:
        target = request.target
        dest = scratch / "feature"
        extractor = ArchiveExtractor()

        if self._is_local(target):
            source = Path(target)
            if not source.is_dir():
                raise InvalidRequest(f"Feature directory does not exist: {target}")
            shutil.copytree(source, dest)
        elif self._is_url(target):
            archive = scratch / "feature.tgz"
            archive.write_bytes(self.context.http.get_bytes(target))
            extractor.extract(archive, dest)
        else:
            client = OciClient(
                self.context.http,
                username=request.option("registry-username") or None,
                password=request.option("registry-password") or None,
                token=request.option("registry-token") or None,
            )
            archive = scratch / "layer.tar"
            archive.write_bytes(client.pull_layer(OciReference.parse(target)))
            extractor.extract(archive, dest)

        return self._feature_root(dest)

    @staticmethod
    def _feature_root(dest: Path) -> Path:
        """Tarballs often wrap the feature in one top-level directory."""
        if (dest / METADATA_FILE).is_file():
            return dest
        nested = [p.parent for p in dest.glob(f"*/{METADATA_FILE}")]
        if len(nested) == 1:
            return nested[0]
        raise ArtifactError(f"Feature metadata file not found: {METADATA_FILE}")

    def _run_script(self, feature_dir: Path, script: str, env: dict[str, str]) -> None:
        path = feature_dir / script
        if not path.is_file():
            raise ArtifactError(f"Feature script not found: {script}")
        path.chmod(0o755)
        logger.info("Executing feature script: %s", script)
        self.context.runner.run(
            ["bash", "+H", "-x", f"./{script}"],
            needs_root=True,
            env=env,
            cwd=str(feature_dir),
            capture=False,
        )

    def _write_container_env(self, feature: FeatureMetadata) -> None:
        if not feature.container_env:
            return
        profile_dir = self.context.path(PROFILE_DIR)
        profile_dir.mkdir(parents=True, exist_ok=True)
        profile = profile_dir / f"picolayer-{feature.id}.sh"

        content = profile.read_text(encoding="utf-8") if profile.is_file() else ""
        for key, value in feature.container_env.items():
            statement = f"export {key}={value}\n"
            if statement not in content:
                content += statement
        profile.write_text(content, encoding="utf-8")
        logger.debug("Wrote container env to %s", profile)

    def _run_entrypoint(self, feature: FeatureMetadata) -> None:
        if not feature.entrypoint:
            return
        logger.info("Executing feature entrypoint: %s", feature.entrypoint)
        result = self.context.runner.run(["sh", "-c", feature.entrypoint], check=False)
        if not result.ok:
            logger.warning("Entrypoint failed but continuing (exit %d)", result.exit_code)
