"""Tests for the local filesystem provider."""

from __future__ import annotations

import errno
import os
import stat
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import pytest

from panelfs._capabilities import Capability
from panelfs._errors import AlreadyExists, NotFound, PermissionDenied, VfsError
from panelfs._path import VfsPath
from panelfs.backends import LocalProvider

if TYPE_CHECKING:
    from pathlib import Path

posix_only = pytest.mark.skipif(os.name != "posix", reason="POSIX permissions and symlinks")


@pytest.fixture
def provider() -> LocalProvider:
    return LocalProvider()


def _p(path: Path | str) -> VfsPath:
    return VfsPath.from_local(str(path))


class TestIdentity:
    def test_claims_local_paths_only(self, provider: LocalProvider) -> None:
        assert provider.can_handle(VfsPath.from_local("/tmp"))
        assert provider.can_handle(VfsPath.parse("file:///tmp"))
        assert not provider.can_handle(VfsPath.parse("sftp://host/tmp"))

    def test_capabilities(self, provider: LocalProvider) -> None:
        assert provider.capabilities.supports(Capability.SYMLINK)
        assert provider.capabilities.supports(Capability.UTIME)

    def test_is_absolute(self, provider: LocalProvider) -> None:
        assert provider.is_absolute(VfsPath.from_local(os.path.abspath("x")))
        assert not provider.is_absolute(VfsPath.from_local("relative/x"))


class TestListing:
    def test_parent_then_directories_then_files(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "b.txt").write_bytes(b"hello")
        (tmp_path / "a_dir").mkdir()
        (tmp_path / ".hidden").write_bytes(b"")

        entries = provider.list_directory(_p(tmp_path))

        assert entries[0].name == ".."
        assert entries[0].path == _p(tmp_path).parent()
        assert entries[1].name == "a_dir"
        assert entries[1].is_dir
        by_name = {e.name: e for e in entries}
        assert by_name["b.txt"].size == 5
        assert by_name[".hidden"].is_hidden
        assert set(by_name) == {"..", "a_dir", "b.txt", ".hidden"}

    def test_root_has_no_parent_entry(self, provider: LocalProvider) -> None:
        entries = provider.list_directory(VfsPath.ROOT)
        assert all(e.name != ".." for e in entries)

    def test_missing_directory(self, provider: LocalProvider, tmp_path: Path) -> None:
        with pytest.raises(NotFound):
            provider.list_directory(_p(tmp_path / "nope"))

    def test_file_is_not_a_directory(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "f").write_bytes(b"")
        with pytest.raises(NotFound):
            provider.list_directory(_p(tmp_path / "f"))

    def test_child_paths_are_combined(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "x").write_bytes(b"")
        [entry] = [e for e in provider.list_directory(_p(tmp_path)) if e.name == "x"]
        assert entry.path.path == str(tmp_path / "x")


class TestFiles:
    def test_write_creates_parents(self, provider: LocalProvider, tmp_path: Path) -> None:
        target = _p(tmp_path / "deep" / "er" / "f.bin")
        with provider.open_write(target) as f:
            f.write(b"abc")
        with provider.open_append(target) as f:
            f.write(b"def")
        with provider.open_read(target) as f:
            assert f.read() == b"abcdef"
        assert provider.file_exists(target)
        assert not provider.directory_exists(target)

    def test_read_missing(self, provider: LocalProvider, tmp_path: Path) -> None:
        with pytest.raises(NotFound):
            provider.open_read(_p(tmp_path / "missing"))

    def test_copy_and_move(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "src").write_bytes(b"payload")
        provider.copy_file(_p(tmp_path / "src"), _p(tmp_path / "sub" / "copy"))
        assert (tmp_path / "sub" / "copy").read_bytes() == b"payload"

        provider.move_file(_p(tmp_path / "src"), _p(tmp_path / "moved"))
        assert not (tmp_path / "src").exists()
        assert (tmp_path / "moved").read_bytes() == b"payload"

    def test_delete_file(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "f").write_bytes(b"")
        provider.delete_file(_p(tmp_path / "f"))
        assert not (tmp_path / "f").exists()
        with pytest.raises(NotFound):
            provider.delete_file(_p(tmp_path / "f"))


class TestDirectories:
    def test_create_is_idempotent(self, provider: LocalProvider, tmp_path: Path) -> None:
        target = _p(tmp_path / "a" / "b")
        provider.create_directory(target)
        provider.create_directory(target)
        assert provider.directory_exists(target)

    def test_create_over_file(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "f").write_bytes(b"")
        with pytest.raises(AlreadyExists):
            provider.create_directory(_p(tmp_path / "f"))

    def test_delete_non_empty(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "d").mkdir()
        (tmp_path / "d" / "f").write_bytes(b"")
        with pytest.raises(VfsError, match="not empty"):
            provider.delete_directory(_p(tmp_path / "d"))
        provider.delete_directory(_p(tmp_path / "d"), recursive=True)
        assert not (tmp_path / "d").exists()

    def test_delete_missing(self, provider: LocalProvider, tmp_path: Path) -> None:
        with pytest.raises(NotFound):
            provider.delete_directory(_p(tmp_path / "nope"))


@posix_only
class TestMetadata:
    def test_stat_permissions(self, provider: LocalProvider, tmp_path: Path) -> None:
        script = tmp_path / "run.sh"
        script.write_bytes(b"#!/bin/sh\n")
        script.chmod(0o750)
        entry = provider.stat(_p(script))
        assert entry.permissions == 0o750
        assert entry.is_executable
        assert entry.uid == os.getuid()
        assert entry.inode == script.stat().st_ino
        assert entry.hard_links == 1
        assert entry.modified_at is not None
        assert entry.modified_at.tzinfo is not None

    def test_set_permissions(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "f").write_bytes(b"")
        provider.set_permissions(_p(tmp_path / "f"), stat.S_IFREG | 0o600)
        assert stat.S_IMODE((tmp_path / "f").stat().st_mode) == 0o600

    def test_set_modification_time_keeps_atime(self, provider: LocalProvider, tmp_path: Path) -> None:
        f = tmp_path / "f"
        f.write_bytes(b"")
        os.utime(f, (1_000_000, 1_000_000))
        when = datetime(2022, 2, 2, 12, 0, tzinfo=timezone.utc)

        provider.set_modification_time(_p(f), when)

        st = f.stat()
        assert st.st_mtime == when.timestamp()
        assert st.st_atime == 1_000_000

    def test_set_owner_to_self(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "f").write_bytes(b"")
        provider.set_owner(_p(tmp_path / "f"), os.getuid(), os.getgid())

    def test_symlink(self, provider: LocalProvider, tmp_path: Path) -> None:
        (tmp_path / "real").mkdir()
        provider.create_symlink(_p(tmp_path / "real"), _p(tmp_path / "link"))
        entry = provider.stat(_p(tmp_path / "link"))
        assert entry.is_symlink
        assert entry.is_dir
        assert entry.symlink_target == str(tmp_path / "real")

    def test_dangling_symlink_is_listed(self, provider: LocalProvider, tmp_path: Path) -> None:
        os.symlink(tmp_path / "gone", tmp_path / "dangling")
        [entry] = [e for e in provider.list_directory(_p(tmp_path)) if e.name == "dangling"]
        assert entry.is_symlink
        assert not entry.is_dir
        assert provider.file_exists(_p(tmp_path / "dangling"))


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("raised", "expected"),
        [
            (FileNotFoundError(errno.ENOENT, "x"), NotFound),
            (FileExistsError(errno.EEXIST, "x"), AlreadyExists),
            (PermissionError(errno.EACCES, "x"), PermissionDenied),
            (OSError(errno.EIO, "I/O error"), VfsError),
        ],
    )
    def test_os_errors(
        self, provider: LocalProvider, raised: OSError, expected: type[VfsError]
    ) -> None:
        path = VfsPath.from_local("/some/where")
        with pytest.raises(expected) as exc_info, provider._errors(path):
            raise raised
        assert exc_info.value.path == "/some/where"
        assert exc_info.value.backend == "local"
        assert exc_info.value.__cause__ is None

    def test_not_empty_message(self, provider: LocalProvider) -> None:
        with pytest.raises(VfsError, match="Directory not empty"), provider._errors(VfsPath.from_local("/d")):
            raise OSError(errno.ENOTEMPTY, "Directory not empty")
