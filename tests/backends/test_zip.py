"""Tests for the ZIP archive provider."""

from __future__ import annotations

import asyncio
import stat
import zipfile
from datetime import datetime
from typing import TYPE_CHECKING

import pytest

from panelfs._errors import NotFound, UnsupportedOperation, VfsError
from panelfs._operations import FileOperations
from panelfs._path import VfsPath
from panelfs._registry import Registry
from panelfs.backends import LocalProvider, TarProvider, ZipProvider

if TYPE_CHECKING:
    from pathlib import Path


def _add(zf: zipfile.ZipFile, name: str, data: bytes = b"", mode: int = 0o100644) -> None:
    info = zipfile.ZipInfo(name, date_time=(2022, 7, 1, 9, 30, 0))
    info.external_attr = mode << 16
    zf.writestr(info, data)


@pytest.fixture
def provider() -> ZipProvider:
    return ZipProvider()


@pytest.fixture
def archive(tmp_path: Path) -> str:
    path = tmp_path / "bundle.zip"
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        _add(zf, "docs/", mode=0o040755)
        _add(zf, "docs/readme.md", b"# hello")
        _add(zf, "docs/api/index.html", b"<html/>")
        _add(zf, "bin/tool", b"\x7fELF", mode=0o100755)
        _add(zf, "latest", b"docs/readme.md", mode=0o120777)
    return str(path)


def _entry(archive: str, inner: str = "") -> VfsPath:
    return VfsPath.archive("zip", archive, inner)


class TestListing:
    def test_root(self, provider: ZipProvider, archive: str) -> None:
        entries = provider.list_directory(VfsPath.from_local(archive))
        assert {e.name: e.is_dir for e in entries} == {"docs": True, "bin": True, "latest": False}

    def test_explicit_and_implied_children(self, provider: ZipProvider, archive: str) -> None:
        entries = provider.list_directory(_entry(archive, "docs"))
        assert [(e.name, e.is_dir) for e in entries] == [("readme.md", False), ("api", True)]

    def test_member_metadata(self, provider: ZipProvider, archive: str) -> None:
        [tool] = provider.list_directory(_entry(archive, "bin"))
        assert tool.size == 4
        assert tool.permissions == 0o755
        assert tool.is_executable
        assert tool.modified_at == datetime(2022, 7, 1, 9, 30, 0).astimezone()

    def test_symlink_flag_from_external_attr(self, provider: ZipProvider, archive: str) -> None:
        entry = provider.stat(_entry(archive, "latest"))
        assert entry.is_symlink
        assert not entry.is_dir

    def test_directory_bits_mark_directory(self, provider: ZipProvider, tmp_path: Path) -> None:
        path = tmp_path / "dirs.zip"
        with zipfile.ZipFile(path, "w") as zf:
            _add(zf, "nodir_slash", mode=stat.S_IFDIR | 0o755)
        [entry] = provider.list_directory(VfsPath.from_local(str(path)))
        assert entry.is_dir

    def test_not_a_directory(self, provider: ZipProvider, archive: str) -> None:
        with pytest.raises(NotFound):
            provider.list_directory(_entry(archive, "docs/readme.md"))

    def test_corrupt(self, provider: ZipProvider, tmp_path: Path) -> None:
        bad = tmp_path / "bad.zip"
        bad.write_bytes(b"PK\x03\x04 definitely not a zip")
        with pytest.raises(VfsError, match="Corrupt zip archive"):
            provider.list_directory(VfsPath.from_local(str(bad)))


class TestReading:
    def test_open_read(self, provider: ZipProvider, archive: str) -> None:
        with provider.open_read(_entry(archive, "docs/api/index.html")) as f:
            assert f.read() == b"<html/>"

    def test_open_directory_fails(self, provider: ZipProvider, archive: str) -> None:
        with pytest.raises(NotFound):
            provider.open_read(_entry(archive, "docs"))

    def test_stat_implied_directory(self, provider: ZipProvider, archive: str) -> None:
        entry = provider.stat(_entry(archive, "docs/api"))
        assert entry.is_dir
        assert entry.path == _entry(archive, "docs/api")

    def test_exists(self, provider: ZipProvider, archive: str) -> None:
        assert provider.file_exists(_entry(archive, "bin/tool"))
        assert provider.directory_exists(_entry(archive, "bin"))
        assert not provider.file_exists(_entry(archive, "bin/other"))
        assert provider.file_exists(VfsPath.from_local(archive))

    def test_writes_rejected(self, provider: ZipProvider, archive: str) -> None:
        with pytest.raises(UnsupportedOperation):
            provider.open_write(_entry(archive, "new.txt"))
        with pytest.raises(UnsupportedOperation):
            provider.create_symlink(_entry(archive, "docs"), _entry(archive, "alias"))


class TestDispatch:
    def test_archive_providers_precede_local(self, archive: str) -> None:
        registry = Registry()
        for provider in (TarProvider(), ZipProvider(), LocalProvider()):
            registry.register(provider)
        assert isinstance(registry.resolve(VfsPath.from_local(archive)), ZipProvider)
        assert isinstance(registry.resolve(_entry(archive, "docs")), ZipProvider)
        assert isinstance(registry.resolve(VfsPath.from_local(archive).parent()), LocalProvider)

    def test_registry_copy_extracts_member(self, archive: str, tmp_path: Path) -> None:
        registry = Registry()
        registry.register(ZipProvider())
        registry.register(LocalProvider())
        target = VfsPath.from_local(str(tmp_path / "readme.md"))
        registry.copy_file(_entry(archive, "docs/readme.md"), target)
        assert (tmp_path / "readme.md").read_bytes() == b"# hello"


@pytest.fixture
def local_registry() -> Registry:
    registry = Registry()
    for provider in (TarProvider(), ZipProvider(), LocalProvider()):
        registry.register(provider)
    return registry


class TestArchiveNamedDirectory:
    def test_existing_directory_is_not_claimed(self, provider: ZipProvider, tmp_path: Path) -> None:
        (tmp_path / "x.zip").mkdir()
        assert not provider.can_handle(VfsPath.from_local(str(tmp_path / "x.zip")))
        assert provider.can_handle(VfsPath.from_local(str(tmp_path / "y.zip")))

    def test_mkdir(self, local_registry: Registry, tmp_path: Path) -> None:
        created = FileOperations(local_registry).create_directory(str(tmp_path), "x.zip")
        assert (tmp_path / "x.zip").is_dir()
        assert isinstance(local_registry.resolve(created), LocalProvider)

    def test_listing(self, local_registry: Registry, tmp_path: Path) -> None:
        (tmp_path / "x.zip").mkdir()
        (tmp_path / "x.zip" / "f.txt").write_bytes(b"plain")
        names = {e.name for e in local_registry.list_directory(VfsPath.from_local(str(tmp_path / "x.zip")))}
        assert "f.txt" in names

    def test_copy_tree_containing_it(self, local_registry: Registry, tmp_path: Path) -> None:
        (tmp_path / "src" / "x.zip").mkdir(parents=True)
        (tmp_path / "src" / "x.zip" / "f.txt").write_bytes(b"plain")
        (tmp_path / "out").mkdir()

        asyncio.run(FileOperations(local_registry).copy([str(tmp_path / "src")], str(tmp_path / "out")))

        assert (tmp_path / "out" / "src" / "x.zip").is_dir()
        assert (tmp_path / "out" / "src" / "x.zip" / "f.txt").read_bytes() == b"plain"

    def test_delete(self, local_registry: Registry, tmp_path: Path) -> None:
        (tmp_path / "x.zip").mkdir()
        (tmp_path / "x.zip" / "f.txt").write_bytes(b"plain")
        asyncio.run(FileOperations(local_registry).delete([str(tmp_path / "x.zip")]))
        assert not (tmp_path / "x.zip").exists()

    def test_bare_missing_path_goes_to_container(self, provider: ZipProvider, tmp_path: Path) -> None:
        path = VfsPath.from_local(str(tmp_path / "new.zip"))
        assert not provider.directory_exists(path)
        provider.create_directory(path)
        assert (tmp_path / "new.zip").is_dir()
