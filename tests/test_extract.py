"""
Tests for archive extraction and binary installation.
"""

import errno
import gzip
import io
import os
import tarfile
from pathlib import Path

import pytest

from picolayer.core.errors import ArtifactError
from picolayer.core.services.release.extract import (
    ArchiveExtractor,
    ArchiveFormat,
    detect_format,
)
from tests.fakes import ELF_BINARY, FakeRunner, make_tar_gz, make_zip


def _write(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


def _tar_with(member: tarfile.TarInfo, data: bytes = b"") -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        member.size = len(data)
        tar.addfile(member, io.BytesIO(data) if data else None)
    return buf.getvalue()


class TestDetectFormat:
    def test_tar_gz(self, tmp_path: Path):
        p = _write(tmp_path / "a.tar.gz", make_tar_gz({"a": b"x"}))
        assert detect_format(p) == ArchiveFormat.TAR

    def test_zip(self, tmp_path: Path):
        p = _write(tmp_path / "a.zip", make_zip({"a": b"x"}))
        assert detect_format(p) == ArchiveFormat.ZIP

    def test_single_gzip(self, tmp_path: Path):
        p = _write(tmp_path / "tool.gz", gzip.compress(ELF_BINARY))
        assert detect_format(p) == ArchiveFormat.GZIP

    def test_content_beats_name(self, tmp_path: Path):
        p = _write(tmp_path / "tool.bin", make_tar_gz({"a": b"x"}))
        assert detect_format(p) == ArchiveFormat.TAR

    def test_raw_binary(self, tmp_path: Path):
        p = _write(tmp_path / "tool-linux-amd64", ELF_BINARY)
        assert detect_format(p) == ArchiveFormat.RAW

    def test_fake_tarball_rejected(self, tmp_path: Path):
        p = _write(tmp_path / "tool.tar.gz", b"<html>rate limited</html>")
        with pytest.raises(ArtifactError, match="not one"):
            detect_format(p)


class TestExtract:
    def test_tar_gz_permissions(self, tmp_path: Path):
        archive = _write(
            tmp_path / "tool.tar.gz",
            make_tar_gz({"tool-1.0/bin/tool": ELF_BINARY, "tool-1.0/README.md": b"# hi"}, mode=0o600),
        )
        files = ArchiveExtractor().extract(archive, tmp_path / "out")
        names = {f.name: f for f in files}
        assert set(names) == {"tool", "README.md"}
        # ELF magic makes it executable even though the archive said 0600
        assert os.stat(names["tool"]).st_mode & 0o777 == 0o755
        assert os.stat(names["README.md"]).st_mode & 0o777 == 0o644

    def test_zip_exec_bit(self, tmp_path: Path):
        archive = _write(tmp_path / "tool.zip", make_zip({"tool.sh": b"echo hi"}, mode=0o755))
        files = ArchiveExtractor().extract(archive, tmp_path / "out")
        assert os.stat(files[0]).st_mode & 0o777 == 0o755

    def test_single_gzip(self, tmp_path: Path):
        archive = _write(tmp_path / "tool-linux.gz", gzip.compress(ELF_BINARY))
        files = ArchiveExtractor().extract(archive, tmp_path / "out")
        assert [f.name for f in files] == ["tool-linux"]
        assert files[0].read_bytes() == ELF_BINARY

    def test_raw_copied(self, tmp_path: Path):
        archive = _write(tmp_path / "tool", ELF_BINARY)
        files = ArchiveExtractor().extract(archive, tmp_path / "out")
        assert files == [tmp_path / "out" / "tool"]

    def test_traversal_rejected(self, tmp_path: Path):
        archive = _write(tmp_path / "evil.tar.gz", make_tar_gz({"../escape": b"x"}))
        with pytest.raises(ArtifactError, match="traversal"):
            ArchiveExtractor().extract(archive, tmp_path / "out")
        assert not (tmp_path / "escape").exists()

    def test_absolute_path_rejected(self, tmp_path: Path):
        archive = _write(tmp_path / "evil.zip", make_zip({"/etc/passwd": b"x"}))
        with pytest.raises(ArtifactError, match="absolute"):
            ArchiveExtractor().extract(archive, tmp_path / "out")

    def test_escaping_symlink_rejected(self, tmp_path: Path):
        link = tarfile.TarInfo("bin/link")
        link.type = tarfile.SYMTYPE
        link.linkname = "../../outside"
        archive = _write(tmp_path / "evil.tar.gz", _tar_with(link))
        with pytest.raises(ArtifactError, match="escaping"):
            ArchiveExtractor().extract(archive, tmp_path / "out")

    def test_absolute_symlink_rejected(self, tmp_path: Path):
        link = tarfile.TarInfo("link")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/shadow"
        archive = _write(tmp_path / "evil.tar.gz", _tar_with(link))
        with pytest.raises(ArtifactError):
            ArchiveExtractor().extract(archive, tmp_path / "out")

    def test_corrupt_archive(self, tmp_path: Path):
        data = make_tar_gz({"a": os.urandom(8192)})
        archive = _write(tmp_path / "broken.tar.gz", data[: len(data) // 2])
        with pytest.raises(ArtifactError):
            ArchiveExtractor().extract(archive, tmp_path / "out")


class TestFindBinary:
    def _files(self, tmp_path: Path, names: dict[str, bytes]) -> list[Path]:
        out = []
        for name, data in names.items():
            p = tmp_path / name
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_bytes(data)
            p.chmod(0o755 if data == ELF_BINARY else 0o644)
            out.append(p)
        return out

    def test_exact_name(self, tmp_path: Path):
        files = self._files(tmp_path, {"a/tool": ELF_BINARY, "a/other": ELF_BINARY})
        assert ArchiveExtractor().find_binary(files, "tool").name == "tool"

    def test_lone_executable(self, tmp_path: Path):
        files = self._files(tmp_path, {"tool-linux-amd64": ELF_BINARY, "LICENSE": b"MIT"})
        assert ArchiveExtractor().find_binary(files, "tool").name == "tool-linux-amd64"

    def test_unique_prefix(self, tmp_path: Path):
        files = self._files(tmp_path, {"tool_v2": ELF_BINARY, "helper": ELF_BINARY})
        assert ArchiveExtractor().find_binary(files, "tool").name == "tool_v2"

    def test_missing(self, tmp_path: Path):
        files = self._files(tmp_path, {"x": ELF_BINARY, "y": ELF_BINARY})
        with pytest.raises(ArtifactError, match="not found"):
            ArchiveExtractor().find_binary(files, "tool")


class TestInstallBinaries:
    def test_installs_with_mode(self, tmp_path: Path):
        src = tmp_path / "src" / "tool"
        src.parent.mkdir()
        src.write_bytes(ELF_BINARY)
        src.chmod(0o755)
        dest = tmp_path / "bin"

        installed = ArchiveExtractor().install_binaries([src], ["tool"], dest)
        assert installed == [dest / "tool"]
        assert (dest / "tool").read_bytes() == ELF_BINARY
        assert os.stat(dest / "tool").st_mode & 0o777 == 0o755
        assert not list(dest.glob(".*picolayer-tmp"))

    def test_permission_error_falls_back_to_install(self, tmp_path: Path, monkeypatch):
        src = tmp_path / "tool"
        src.write_bytes(ELF_BINARY)
        src.chmod(0o755)

        def deny(*args, **kwargs):
            raise PermissionError("read-only")

        monkeypatch.setattr("picolayer.core.services.release.extract.shutil.copyfile", deny)
        runner = FakeRunner()
        ArchiveExtractor().install_binaries([src], ["tool"], tmp_path / "bin", runner=runner)
        call = runner.call("install", "-D", "-m", "0755")
        assert call.needs_root
        assert call.args[-1] == str(tmp_path / "bin" / "tool")

    @pytest.mark.parametrize("step", ["copyfile", "replace"])
    def test_failed_copy_leaves_nothing(self, tmp_path: Path, monkeypatch, step):
        src = tmp_path / "src" / "tool"
        src.parent.mkdir()
        src.write_bytes(ELF_BINARY)
        src.chmod(0o755)
        dest = tmp_path / "bin"

        def partial_copy(source, target):
            Path(target).write_bytes(ELF_BINARY[:8])
            raise OSError(errno.ENOSPC, "No space left on device")

        def cross_device(source, target):
            raise OSError(errno.EXDEV, "Invalid cross-device link")

        if step == "copyfile":
            monkeypatch.setattr("picolayer.core.services.release.extract.shutil.copyfile", partial_copy)
        else:
            monkeypatch.setattr("picolayer.core.services.release.extract.os.replace", cross_device)

        with pytest.raises(OSError):
            ArchiveExtractor().install_binaries([src], ["tool"], dest, runner=FakeRunner())
        assert list(dest.iterdir()) == []
