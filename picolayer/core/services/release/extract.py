"""
Archive extraction — unpack release assets safely.

Formats are detected by content first (magic bytes), then by file
extension.  Members that would land outside the destination (absolute
paths, ``..`` components, escaping links) abort the whole extraction.

After unpacking, permissions are normalised: directories 0755, files
0755 when they were executable or look like a program (ELF, Mach-O,
shebang), everything else 0644.
"""

from __future__ import annotations

import bz2
import gzip
import logging
import lzma
import os
import shutil
import stat
import tarfile
import zipfile
from enum import StrEnum
from pathlib import Path, PurePosixPath

from picolayer.core.errors import ArtifactError

logger = logging.getLogger(__name__)

_GZIP_MAGIC = b"\x1f\x8b"
_XZ_MAGIC = b"\xfd7zXZ\x00"
_BZ2_MAGIC = b"BZh"
_ZIP_MAGIC = b"PK\x03\x04"

_EXECUTABLE_MAGIC = (
    b"\x7fELF",
    b"\xfe\xed\xfa\xce",
    b"\xfe\xed\xfa\xcf",
    b"\xce\xfa\xed\xfe",
    b"\xcf\xfa\xed\xfe",
    b"\xca\xfe\xba\xbe",
    b"#!",
)


class ArchiveFormat(StrEnum):
    TAR = "tar"          # plain or compressed tarball
    ZIP = "zip"
    GZIP = "gzip"        # single compressed file
    XZ = "xz"
    BZIP2 = "bzip2"
    RAW = "raw"          # bare binary


def detect_format(path: Path) -> ArchiveFormat:
    """Detect the archive format of ``path``."""
    with open(path, "rb") as f:
        head = f.read(8)

    if head.startswith(_ZIP_MAGIC):
        return ArchiveFormat.ZIP
    try:
        if tarfile.is_tarfile(path):
            return ArchiveFormat.TAR
    except (OSError, tarfile.TarError, EOFError, lzma.LZMAError):
        pass
    if head.startswith(_GZIP_MAGIC):
        return ArchiveFormat.GZIP
    if head.startswith(_XZ_MAGIC):
        return ArchiveFormat.XZ
    if head.startswith(_BZ2_MAGIC):
        return ArchiveFormat.BZIP2

    # Content gave no answer; fall back to the name
    name = path.name.lower()
    if name.endswith((".tar", ".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2")):
        raise ArtifactError(f"{path.name} is named like a tarball but is not one")
    if name.endswith(".zip"):
        raise ArtifactError(f"{path.name} is named like a zip archive but is not one")
    return ArchiveFormat.RAW


def _check_member_name(name: str, archive: str) -> PurePosixPath:
    member = PurePosixPath(name)
    if member.is_absolute() or name.startswith(("/", "\\")):
        raise ArtifactError(f"Refusing absolute path {name!r} in {archive}")
    if ".." in member.parts:
        raise ArtifactError(f"Refusing path traversal {name!r} in {archive}")
    return member


def _check_link(member: tarfile.TarInfo, archive: str) -> None:
    target = PurePosixPath(member.linkname)
    if target.is_absolute():
        raise ArtifactError(
            f"Refusing link {member.name!r} → {member.linkname!r} in {archive}"
        )
    base = PurePosixPath(member.name).parent if member.issym() else PurePosixPath()
    depth = 0
    for part in (*base.parts, *target.parts):
        if part == "..":
            depth -= 1
        elif part not in ("", "."):
            depth += 1
        if depth < 0:
            raise ArtifactError(
                f"Refusing link {member.name!r} → {member.linkname!r} "
                f"escaping the destination in {archive}"
            )


def _looks_executable(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            head = f.read(4)
    except OSError:
        return False
    return head.startswith(_EXECUTABLE_MAGIC)


class ArchiveExtractor:
    """Unpacks archives and installs the binaries they contain."""

    def extract(self, archive: Path, dest: Path) -> list[Path]:
        """Unpack ``archive`` into ``dest``.

        Returns:
            Regular files written, sorted.

        Raises:
            ArtifactError: Unsafe member or unreadable archive.
        """
        dest.mkdir(parents=True, exist_ok=True)
        fmt = detect_format(archive)
        logger.debug("Extracting %s (%s) into %s", archive.name, fmt, dest)

        exec_hints: set[Path] = set()
        try:
            if fmt == ArchiveFormat.TAR:
                self._extract_tar(archive, dest)
            elif fmt == ArchiveFormat.ZIP:
                exec_hints = self._extract_zip(archive, dest)
            elif fmt == ArchiveFormat.RAW:
                target = dest / archive.name
                shutil.copyfile(archive, target)
            else:
                self._decompress_single(archive, dest, fmt)
        except (tarfile.TarError, zipfile.BadZipFile, lzma.LZMAError, EOFError) as e:
            raise ArtifactError(f"Cannot extract {archive.name}: {e}") from e
        except OSError as e:
            raise ArtifactError(f"Cannot extract {archive.name}: {e}") from e

        return self._normalise_permissions(dest, exec_hints)

    def _extract_tar(self, archive: Path, dest: Path) -> None:
        with tarfile.open(archive, "r:*") as tar:
            members = []
            for member in tar.getmembers():
                _check_member_name(member.name, archive.name)
                if member.issym() or member.islnk():
                    _check_link(member, archive.name)
                elif not (member.isfile() or member.isdir()):
                    logger.debug("Skipping special member %s", member.name)
                    continue
                members.append(member)
            try:
                tar.extractall(dest, members=members, filter="data")
            except tarfile.FilterError as e:
                raise ArtifactError(f"Unsafe member in {archive.name}: {e}") from e

    def _extract_zip(self, archive: Path, dest: Path) -> set[Path]:
        exec_hints: set[Path] = set()
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                _check_member_name(info.filename, archive.name)
            for info in zf.infolist():
                zf.extract(info, dest)
                mode = info.external_attr >> 16
                if not info.is_dir() and mode & 0o111:
                    exec_hints.add(dest / info.filename)
        return exec_hints

    def _decompress_single(self, archive: Path, dest: Path, fmt: ArchiveFormat) -> None:
        opener = {
            ArchiveFormat.GZIP: gzip.open,
            ArchiveFormat.XZ: lzma.open,
            ArchiveFormat.BZIP2: bz2.open,
        }[fmt]
        name = archive.name
        for suffix in (".gz", ".xz", ".bz2"):
            if name.lower().endswith(suffix):
                name = name[: -len(suffix)]
                break
        with opener(archive, "rb") as src, open(dest / name, "wb") as out:
            shutil.copyfileobj(src, out)

    def _normalise_permissions(self, dest: Path, exec_hints: set[Path]) -> list[Path]:
        files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(dest):
            base = Path(dirpath)
            for d in dirnames:
                p = base / d
                if not p.is_symlink():
                    p.chmod(0o755)
            for f in filenames:
                p = base / f
                if p.is_symlink():
                    continue
                mode = p.stat().st_mode
                executable = (
                    bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))
                    or p in exec_hints
                    or _looks_executable(p)
                )
                p.chmod(0o755 if executable else 0o644)
                files.append(p)
        return sorted(files)

    # ── Installation ────────────────────────────────────────────

    def find_binary(self, files: list[Path], name: str) -> Path:
        """Locate the executable called ``name`` among extracted files.

        A lone executable is accepted under any name (release assets
        are often bare binaries like ``tool-linux-amd64``).
        """
        executables = [p for p in files if os.access(p, os.X_OK) and not p.is_symlink()]
        exact = [p for p in executables if p.name in (name, f"{name}.exe")]
        if exact:
            return min(exact, key=lambda p: (len(p.parts), str(p)))
        if len(executables) == 1:
            return executables[0]
        prefixed = [p for p in executables if p.name.startswith(f"{name}-") or p.name.startswith(f"{name}_")]
        if len(prefixed) == 1:
            return prefixed[0]
        raise ArtifactError(f"Binary {name!r} not found in the downloaded asset")

    def install_binaries(
        self,
        files: list[Path],
        names: list[str],
        install_dir: Path,
        runner=None,
    ) -> list[Path]:
        """Copy each named binary into ``install_dir`` with mode 0755.

        Falls back to ``install -m 0755`` as root when the directory is
        not writable and a command runner is given.
        """
        installed: list[Path] = []
        for name in names:
            source = self.find_binary(files, name)
            target = install_dir / name
            tmp = target.with_name(f".{name}.picolayer-tmp")
            try:
                install_dir.mkdir(parents=True, exist_ok=True)
                try:
                    shutil.copyfile(source, tmp)
                    tmp.chmod(0o755)
                    os.replace(tmp, target)
                except BaseException:
                    # A half-written copy must not stay in the install dir
                    tmp.unlink(missing_ok=True)
                    raise
            except PermissionError:
                if runner is None:
                    raise
                runner.run(
                    ["install", "-D", "-m", "0755", str(source), str(target)],
                    needs_root=True,
                )
            logger.info("Installed %s → %s", source.name, target)
            installed.append(target)
        return installed
