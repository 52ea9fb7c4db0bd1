"""
Shared test fixtures and configuration.
"""

import tempfile
from pathlib import Path

import pytest

from picolayer.adapters.base import BackendContext
from picolayer.core.models.settings import Settings
from picolayer.core.services.release.platform import Platform
from tests.fakes import FakeHttp, FakeRunner, write_os_release


@pytest.fixture(autouse=True)
def scratch_root(tmp_path: Path, monkeypatch) -> Path:
    """Route scratch directories into the test's tmp dir."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    return scratch


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


@pytest.fixture
def sysroot(tmp_path: Path) -> Path:
    """A fake system root identifying as Ubuntu."""
    root = tmp_path / "root"
    root.mkdir()
    write_os_release(root, "ubuntu")
    return root


@pytest.fixture
def settings(sysroot: Path) -> Settings:
    """Default install paths, anchored below the fake root."""
    return Settings(sysroot=sysroot)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner(available=("apt-get", "apt", "dpkg-query", "bash"))


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def platform() -> Platform:
    return Platform.parse("x86_64-unknown-linux-gnu")


@pytest.fixture
def context(settings, runner, http, platform, home) -> BackendContext:
    return BackendContext(settings=settings, runner=runner, http=http, platform=platform)
