"""
Tests for the Homebrew backend.
"""

import pytest

from picolayer.adapters.packages.brew import BrewBackend
from picolayer.core.models.request import InstallRequest
from tests.fakes import execute, touch


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "Library/Caches/Homebrew"


@pytest.fixture
def backend(context, runner, cache_dir) -> BrewBackend:
    runner.available.add("brew")
    runner.respond("brew", "--cache", stdout=f"{cache_dir}\n")
    runner.on("brew", "install", effect=lambda argv: touch(cache_dir / "downloads/jq.bottle.tar.gz"))
    runner.respond("brew", "list", "--versions", stdout="jq 1.7.1\n")
    return BrewBackend(context)


class TestBrew:
    def test_install(self, backend, runner, cache_dir):
        result = execute(backend, InstallRequest(kind="brew", target="jq"))

        assert result.ok, result.message
        assert result.resolved_version == "1.7.1"
        assert runner.index("brew", "update") < runner.index("brew", "install", "jq")
        assert runner.index("brew", "cleanup", "--prune=all", "-s") > runner.index("brew", "install")
        assert not cache_dir.exists()
        assert not any(c.needs_root for c in runner.calls)

    def test_versioned_formula(self, backend, runner):
        execute(backend, InstallRequest(kind="brew", target="node", version="20"))
        assert runner.ran("brew", "install", "node@20")

    def test_range_rejected(self, backend, runner):
        result = execute(backend, InstallRequest(kind="brew", target="node", version=">=20"))
        assert result.error_type == "InvalidRequest"
        assert runner.calls == []

    def test_missing_brew(self, context):
        result = execute(BrewBackend(context), InstallRequest(kind="brew", target="jq"))
        assert result.error_type == "InvalidRequest"
        assert "Homebrew" in result.message
