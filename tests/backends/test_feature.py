"""
Tests for the devcontainer feature backend.
"""

import json
from pathlib import Path

import pytest

from picolayer.adapters.containers.feature import (
    DevcontainerFeatureBackend,
    FeatureMetadata,
    option_env_name,
    resolve_remote_user,
)
from picolayer.core.models.request import InstallRequest
from tests.fakes import execute, make_tar_gz, sha256

METADATA = {
    "id": "hello",
    "version": "1.2.0",
    "name": "Hello",
    "options": {
        "greeting": {"type": "string", "default": "hey"},
        "installTools": {"type": "boolean", "default": True},
        "noDefault": {"type": "string"},
    },
    "containerEnv": {"HELLO_HOME": "/opt/hello"},
}

INSTALL_SH = b"#!/usr/bin/env bash\necho \"$GREETING\"\n"


@pytest.fixture
def feature_dir(tmp_path: Path) -> Path:
    path = tmp_path / "features" / "hello"
    path.mkdir(parents=True)
    (path / "devcontainer-feature.json").write_text(json.dumps(METADATA))
    (path / "install.sh").write_bytes(INSTALL_SH)
    return path


@pytest.fixture
def backend(context) -> DevcontainerFeatureBackend:
    return DevcontainerFeatureBackend(context)


def _request(target: str, **kwargs) -> InstallRequest:
    options = {"remote-user": "root", **kwargs.pop("options", {})}
    return InstallRequest(kind="devcontainer-feature", target=target, options=options, **kwargs)


class TestLocalFeature:
    def test_runs_install_script(self, backend, runner, feature_dir, scratch_root: Path):
        result = execute(backend, _request(str(feature_dir), parameters={"greeting": "hi"}))

        assert result.ok, result.message
        assert result.resolved_version == "1.2.0"
        call = runner.call("bash")
        assert call.args == ["bash", "+H", "-x", "./install.sh"]
        assert call.needs_root
        assert call.capture is False
        assert call.cwd.startswith(str(scratch_root))
        assert call.env["GREETING"] == "hi"
        assert call.env["INSTALLTOOLS"] == "true"
        assert "NODEFAULT" not in call.env
        assert call.env["_REMOTE_USER"] == "root"
        assert call.env["_REMOTE_USER_HOME"] == "/root"
        assert call.env["_CONTAINER_USER"] == "root"
        assert list(scratch_root.iterdir()) == []
        # the source directory is never touched
        assert (feature_dir / "install.sh").read_bytes() == INSTALL_SH

    def test_request_env_passed(self, backend, runner, feature_dir):
        execute(backend, _request(str(feature_dir), env={"HTTP_PROXY": "http://proxy:3128"}))
        assert runner.call("bash").env["HTTP_PROXY"] == "http://proxy:3128"

    def test_container_env_written_once(self, backend, feature_dir, sysroot: Path):
        execute(backend, _request(str(feature_dir)))
        execute(backend, _request(str(feature_dir)))
        profile = sysroot / "etc/profile.d/picolayer-hello.sh"
        assert profile.read_text() == "export HELLO_HOME=/opt/hello\n"

    def test_custom_script(self, backend, runner, feature_dir):
        (feature_dir / "setup").mkdir()
        (feature_dir / "setup" / "run.sh").write_bytes(INSTALL_SH)
        result = execute(backend, _request(str(feature_dir), options={"script": "setup/run.sh"}))
        assert result.ok
        assert runner.call("bash").args[-1] == "./setup/run.sh"

    @pytest.mark.parametrize("script", ["../evil.sh", "/etc/evil.sh"])
    def test_script_outside_feature_rejected(self, backend, runner, feature_dir, script):
        result = execute(backend, _request(str(feature_dir), options={"script": script}))
        assert result.error_type == "InvalidRequest"
        assert runner.calls == []

    def test_missing_script(self, backend, feature_dir):
        (feature_dir / "install.sh").unlink()
        result = execute(backend, _request(str(feature_dir)))
        assert result.error_type == "ArtifactError"
        assert "script not found" in result.message

    def test_missing_metadata(self, backend, feature_dir):
        (feature_dir / "devcontainer-feature.json").unlink()
        result = execute(backend, _request(str(feature_dir)))
        assert result.error_type == "ArtifactError"

    def test_missing_directory(self, backend, tmp_path: Path):
        result = execute(backend, _request(str(tmp_path / "nope")))
        assert result.error_type == "InvalidRequest"

    def test_failing_script_cleans_scratch(self, backend, runner, feature_dir, scratch_root: Path):
        runner.respond("bash", exit_code=1)
        result = execute(backend, _request(str(feature_dir)))
        assert result.error_type == "BackendExecutionFailed"
        assert list(scratch_root.iterdir()) == []


class TestEntrypoint:
    @pytest.fixture
    def feature_dir(self, feature_dir: Path) -> Path:
        data = dict(METADATA, entrypoint="/usr/local/share/hello-init.sh")
        (feature_dir / "devcontainer-feature.json").write_text(json.dumps(data))
        return feature_dir

    def test_entrypoint_runs_after_script(self, backend, runner, feature_dir):
        execute(backend, _request(str(feature_dir)))
        assert runner.index("bash") < runner.index("sh", "-c", "/usr/local/share/hello-init.sh")

    def test_entrypoint_failure_is_not_fatal(self, backend, runner, feature_dir):
        runner.respond("sh", "-c", exit_code=127)
        assert execute(backend, _request(str(feature_dir))).ok


class TestRemoteFeatures:
    def test_https_tarball(self, backend, runner, http):
        tarball = make_tar_gz({
            "hello/devcontainer-feature.json": json.dumps(METADATA).encode(),
            "hello/install.sh": INSTALL_SH,
        })
        http.add("https://example.com/hello.tgz", tarball)
        result = execute(backend, _request("https://example.com/hello.tgz"))
        assert result.ok, result.message
        assert runner.call("bash").cwd.endswith("/feature/hello")

    def test_oci_reference(self, backend, runner, http):
        layer = make_tar_gz({
            "devcontainer-feature.json": json.dumps(METADATA).encode(),
            "install.sh": INSTALL_SH,
        })
        base = "https://ghcr.io/v2/devcontainers/features/hello"
        http.add_json(f"{base}/manifests/1", {
            "layers": [{
                "mediaType": "application/vnd.devcontainers.layer.v1+tar",
                "digest": sha256(layer),
            }],
        })
        http.add(f"{base}/blobs/{sha256(layer)}", layer)

        result = execute(backend, _request("ghcr.io/devcontainers/features/hello:1"))
        assert result.ok, result.message
        assert runner.ran("bash", "+H", "-x", "./install.sh")

    def test_invalid_reference(self, backend):
        result = execute(backend, _request("not a ref"))
        assert result.error_type == "InvalidRequest"


class TestHelpers:
    def test_option_env_name(self):
        assert option_env_name("installTools") == "INSTALLTOOLS"
        assert option_env_name("node-version") == "NODE_VERSION"

    def test_resolve_options(self):
        meta = FeatureMetadata.model_validate(METADATA)
        assert meta.resolve_options({"greeting": "yo"}) == {
            "greeting": "yo",
            "installTools": "true",
        }
        assert meta.container_env == {"HELLO_HOME": "/opt/hello"}

    def test_remote_user_fallback(self, monkeypatch):
        import pwd

        def getpwnam(name):
            raise KeyError(name)

        def getpwuid(uid):
            raise KeyError(uid)

        monkeypatch.setattr(pwd, "getpwnam", getpwnam)
        monkeypatch.setattr(pwd, "getpwuid", getpwuid)
        assert resolve_remote_user("ghost") == ("root", "/root")
