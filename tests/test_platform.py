"""
Tests for platform and distro detection.
"""

from pathlib import Path

import pytest

from picolayer.adapters.shell.distro import DistroFamily, detect_distro, parse_os_release
from picolayer.core.services.release.platform import (
    Platform,
    arch_match,
    detect_libc,
    os_match,
)
from tests.fakes import touch, write_os_release


class TestTokenMatching:
    def test_exact_beats_alias(self):
        assert arch_match("x86_64", "tool-x86_64-linux") == 2
        assert arch_match("x86_64", "tool-amd64-linux") == 1
        assert arch_match("x86_64", "tool-linux") == 0

    def test_x86_is_not_x86_64(self):
        assert arch_match("i686", "tool-x86_64") == 0
        assert arch_match("i686", "tool-x86-64") == 0
        assert arch_match("i686", "tool-x86.tar.gz") == 1

    def test_arm_is_not_arm64(self):
        assert arch_match("armv7", "tool-arm64") == 0

    def test_os(self):
        assert os_match("macos", "tool-darwin-arm64") == 2
        assert os_match("macos", "tool-macos-arm64") == 1
        assert os_match("linux", "tool-darwin") == 0


class TestPlatform:
    @pytest.mark.parametrize(
        "triple,arch,os_name,libc",
        [
            ("x86_64-unknown-linux-gnu", "x86_64", "linux", "gnu"),
            ("aarch64-unknown-linux-musl", "aarch64", "linux", "musl"),
            ("arm64-apple-darwin", "aarch64", "macos", ""),
            ("x86_64-pc-windows-msvc", "x86_64", "windows", ""),
        ],
    )
    def test_parse(self, triple, arch, os_name, libc):
        p = Platform.parse(triple)
        assert (p.arch, p.os, p.libc) == (arch, os_name, libc)

    def test_triple_round_trip(self):
        assert Platform.parse("x86_64-unknown-linux-musl").triple == "x86_64-unknown-linux-musl"
        assert Platform(arch="aarch64", os="macos").triple == "aarch64-apple-darwin"

    def test_foreign(self):
        p = Platform.parse("x86_64-unknown-linux-gnu")
        assert p.foreign_arch("tool-aarch64-linux")
        assert not p.foreign_arch("tool-amd64-linux")
        assert not p.foreign_arch("tool-linux")
        assert p.foreign_os("tool-darwin-amd64")
        assert not p.foreign_os("tool-linux-amd64")

    def test_libc_score(self):
        gnu = Platform.parse("x86_64-unknown-linux-gnu")
        musl = Platform.parse("x86_64-unknown-linux-musl")
        assert gnu.libc_score("tool-linux-gnu") == 1
        assert gnu.libc_score("tool-linux-musl") == -1
        assert gnu.libc_score("tool-linux") == 0
        assert musl.libc_score("tool-linux-gnu") is None

    def test_detect_libc(self, tmp_path: Path):
        assert detect_libc(tmp_path) == "gnu"
        touch(tmp_path / "lib" / "ld-musl-x86_64.so.1")
        assert detect_libc(tmp_path) == "musl"


class TestDistro:
    def test_parse_os_release(self):
        values = parse_os_release('ID="ubuntu"\n# comment\nVERSION_ID=24.04\nbogus\n')
        assert values == {"ID": "ubuntu", "VERSION_ID": "24.04"}

    @pytest.mark.parametrize(
        "distro,family",
        [
            ("ubuntu", DistroFamily.DEBIAN),
            ("debian", DistroFamily.DEBIAN),
            ("alpine", DistroFamily.ALPINE),
            ("fedora", DistroFamily.OTHER),
        ],
    )
    def test_detect(self, tmp_path: Path, distro, family):
        write_os_release(tmp_path, distro)
        info = detect_distro(tmp_path)
        assert info.id == distro
        assert info.family == family

    def test_ubuntu_flags(self, tmp_path: Path):
        write_os_release(tmp_path, "ubuntu")
        info = detect_distro(tmp_path)
        assert info.is_ubuntu
        assert info.is_debian_like
        assert not info.is_alpine

    def test_marker_files(self, tmp_path: Path):
        touch(tmp_path / "etc" / "debian_version", b"12.5\n")
        assert detect_distro(tmp_path).is_debian_like

    def test_unknown(self, tmp_path: Path):
        info = detect_distro(tmp_path)
        assert info.id == "unknown"
        assert info.family == DistroFamily.OTHER
