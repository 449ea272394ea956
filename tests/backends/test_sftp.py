"""SFTP provider tests against the in-process paramiko server.

Requires: paramiko, tenacity. The module is skipped when paramiko is missing.
"""

from __future__ import annotations

import os
import stat
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import pytest

paramiko = pytest.importorskip("paramiko", reason="paramiko not installed")

from panelfs._errors import InvalidPath, NotFound, PermissionDenied, TransportError, VfsError  # noqa: E402
from panelfs._path import VfsPath  # noqa: E402
from panelfs.backends import HostKeyPolicy, SFTPProvider  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from tests.backends.conftest import SFTPTarget

pytestmark = pytest.mark.integration

_NO_KEYS = {"allow_agent": False, "look_for_keys": False}


def _path(target: SFTPTarget, relative: str = "", *, password: str = "testpass") -> VfsPath:
    remote = f"{target.remote_dir}/{relative}" if relative else target.remote_dir
    return VfsPath("sftp", remote, host="127.0.0.1", port=target.port, user="testuser", password=password)


@pytest.fixture
def provider() -> Iterator[SFTPProvider]:
    sftp = SFTPProvider(host_key_policy=HostKeyPolicy.AUTO_ADD, retries=1, connect_kwargs=dict(_NO_KEYS))
    yield sftp
    sftp.close()


# region: connection


class TestConnection:
    def test_policy_values(self) -> None:
        assert HostKeyPolicy("strict") is HostKeyPolicy.STRICT
        assert HostKeyPolicy("tofu") is HostKeyPolicy.TRUST_ON_FIRST_USE
        assert HostKeyPolicy("auto") is HostKeyPolicy.AUTO_ADD

    def test_missing_host(self, provider: SFTPProvider) -> None:
        with pytest.raises(InvalidPath):
            provider.list_directory(VfsPath("sftp", "/tmp"))

    def test_wrong_password(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with pytest.raises(PermissionDenied):
            provider.list_directory(_path(sftp_target, password="wrong"))

    def test_strict_with_known_host(self, sftp_target: SFTPTarget, tmp_path: Path) -> None:
        known_hosts = tmp_path / "known_hosts"
        known_hosts.write_text(sftp_target.known_hosts_entry + "\n")
        sftp = SFTPProvider(known_hosts_path=str(known_hosts), retries=1, connect_kwargs=dict(_NO_KEYS))
        try:
            assert sftp.directory_exists(_path(sftp_target))
        finally:
            sftp.close()

    def test_strict_rejects_unknown_host(self, sftp_target: SFTPTarget, tmp_path: Path) -> None:
        known_hosts = tmp_path / "known_hosts"
        known_hosts.write_text("")
        sftp = SFTPProvider(known_hosts_path=str(known_hosts), retries=1, connect_kwargs=dict(_NO_KEYS))
        try:
            with pytest.raises(TransportError):
                sftp.directory_exists(_path(sftp_target))
        finally:
            sftp.close()

    def test_trust_on_first_use_saves_key(self, sftp_target: SFTPTarget, tmp_path: Path) -> None:
        known_hosts = tmp_path / "ssh" / "known_hosts"
        sftp = SFTPProvider(
            host_key_policy="tofu", known_hosts_path=str(known_hosts), retries=1, connect_kwargs=dict(_NO_KEYS)
        )
        try:
            assert sftp.directory_exists(_path(sftp_target))
        finally:
            sftp.close()
        assert f"[127.0.0.1]:{sftp_target.port}" in known_hosts.read_text()

        strict = SFTPProvider(known_hosts_path=str(known_hosts), retries=1, connect_kwargs=dict(_NO_KEYS))
        try:
            assert strict.directory_exists(_path(sftp_target))
        finally:
            strict.close()

    def test_session_is_reused(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        provider.directory_exists(_path(sftp_target))
        provider.directory_exists(_path(sftp_target, "other"))
        assert len(provider._sessions) == 1

    def test_reconnects_after_transport_drop(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        provider.directory_exists(_path(sftp_target))
        [session] = provider._sessions.values()
        session.ssh.close()
        assert provider.directory_exists(_path(sftp_target))
        assert session.is_alive()

    def test_close_then_use(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        provider.directory_exists(_path(sftp_target))
        provider.close()
        assert provider._sessions == {}
        assert provider.directory_exists(_path(sftp_target))


# endregion

# region: directories


class TestDirectories:
    def test_listing(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with open(os.path.join(sftp_target.local_dir, "a.txt"), "wb") as f:
            f.write(b"hello")
        os.mkdir(os.path.join(sftp_target.local_dir, "sub"))

        entries = provider.list_directory(_path(sftp_target))

        assert entries[0].name == ".."
        assert entries[0].path == _path(sftp_target).parent()
        by_name = {e.name: e for e in entries[1:]}
        assert set(by_name) == {"a.txt", "sub"}
        assert by_name["a.txt"].size == 5
        assert by_name["a.txt"].path == _path(sftp_target, "a.txt")
        assert by_name["sub"].is_dir
        assert by_name["sub"].size == 0

    def test_list_missing(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with pytest.raises(NotFound):
            provider.list_directory(_path(sftp_target, "nope"))

    def test_create_nested(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        provider.create_directory(_path(sftp_target, "x/y/z"))
        assert os.path.isdir(os.path.join(sftp_target.local_dir, "x", "y", "z"))
        provider.create_directory(_path(sftp_target, "x/y/z"))

    def test_delete_empty_and_non_empty(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        os.makedirs(os.path.join(sftp_target.local_dir, "d", "inner"))
        with open(os.path.join(sftp_target.local_dir, "d", "inner", "f"), "wb") as f:
            f.write(b"1")

        with pytest.raises(VfsError, match="not empty"):
            provider.delete_directory(_path(sftp_target, "d"))
        provider.delete_directory(_path(sftp_target, "d"), recursive=True)

        assert not os.path.exists(os.path.join(sftp_target.local_dir, "d"))

    def test_delete_missing(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with pytest.raises(NotFound):
            provider.delete_directory(_path(sftp_target, "gone"))


# endregion

# region: files


class TestFiles:
    def test_write_append_read(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        target = _path(sftp_target, "f.bin")
        with provider.open_write(target) as f:
            f.write(b"abc")
        with provider.open_append(target) as f:
            f.write(b"def")
        with provider.open_read(target) as f:
            assert f.read() == b"abcdef"
        assert provider.file_exists(target)
        assert not provider.directory_exists(target)

    def test_large_file(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        payload = os.urandom(300_000)
        with provider.open_write(_path(sftp_target, "big")) as f:
            f.write(payload)
        with open(os.path.join(sftp_target.local_dir, "big"), "rb") as f:
            assert f.read() == payload

    def test_read_missing(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with pytest.raises(NotFound):
            provider.open_read(_path(sftp_target, "missing"))

    def test_exists(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        assert not provider.file_exists(_path(sftp_target, "missing"))
        assert not provider.file_exists(_path(sftp_target))
        assert provider.directory_exists(_path(sftp_target))

    def test_copy_same_session(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with provider.open_write(_path(sftp_target, "src")) as f:
            f.write(b"payload")
        provider.copy_file(_path(sftp_target, "src"), _path(sftp_target, "dst"))
        with open(os.path.join(sftp_target.local_dir, "dst"), "rb") as f:
            assert f.read() == b"payload"

    def test_move_replaces_existing(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        for name, data in (("src", b"new"), ("dst", b"old")):
            with open(os.path.join(sftp_target.local_dir, name), "wb") as f:
                f.write(data)

        provider.move_file(_path(sftp_target, "src"), _path(sftp_target, "dst"))

        assert not os.path.exists(os.path.join(sftp_target.local_dir, "src"))
        with open(os.path.join(sftp_target.local_dir, "dst"), "rb") as f:
            assert f.read() == b"new"

    def test_delete(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with open(os.path.join(sftp_target.local_dir, "f"), "wb") as f:
            f.write(b"")
        provider.delete_file(_path(sftp_target, "f"))
        assert not os.path.exists(os.path.join(sftp_target.local_dir, "f"))
        with pytest.raises(NotFound):
            provider.delete_file(_path(sftp_target, "f"))


# endregion

# region: metadata


class TestMetadata:
    def test_stat_file(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        local = os.path.join(sftp_target.local_dir, "run.sh")
        with open(local, "wb") as f:
            f.write(b"#!/bin/sh\n")
        os.chmod(local, 0o750)

        entry = provider.stat(_path(sftp_target, "run.sh"))

        assert entry.name == "run.sh"
        assert entry.size == 10
        assert entry.permissions == 0o750
        assert entry.is_executable
        assert entry.modified_at is not None
        assert entry.modified_at.tzinfo is timezone.utc

    def test_stat_missing(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        with pytest.raises(NotFound):
            provider.stat(_path(sftp_target, "missing"))

    def test_set_permissions(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        local = os.path.join(sftp_target.local_dir, "f")
        with open(local, "wb") as f:
            f.write(b"")
        provider.set_permissions(_path(sftp_target, "f"), stat.S_IFREG | 0o600)
        assert stat.S_IMODE(os.stat(local).st_mode) == 0o600

    def test_set_modification_time(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        local = os.path.join(sftp_target.local_dir, "f")
        with open(local, "wb") as f:
            f.write(b"")
        when = datetime(2021, 5, 6, 7, 8, 9, tzinfo=timezone.utc)

        provider.set_modification_time(_path(sftp_target, "f"), when)

        assert int(os.stat(local).st_mtime) == int(when.timestamp())
        assert provider.stat(_path(sftp_target, "f")).modified_at == when

    def test_symlink(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        os.mkdir(os.path.join(sftp_target.local_dir, "real"))

        provider.create_symlink(_path(sftp_target, "real"), _path(sftp_target, "link"))

        entry = provider.stat(_path(sftp_target, "link"))
        assert entry.is_symlink
        assert entry.is_dir
        assert entry.symlink_target == f"{sftp_target.remote_dir}/real"
        assert os.path.islink(os.path.join(sftp_target.local_dir, "link"))

    def test_recursive_delete_keeps_symlink_target(self, provider: SFTPProvider, sftp_target: SFTPTarget) -> None:
        os.makedirs(os.path.join(sftp_target.local_dir, "keep"))
        with open(os.path.join(sftp_target.local_dir, "keep", "f"), "wb") as f:
            f.write(b"x")
        os.mkdir(os.path.join(sftp_target.local_dir, "d"))
        provider.create_symlink(_path(sftp_target, "keep"), _path(sftp_target, "d/alias"))

        provider.delete_directory(_path(sftp_target, "d"), recursive=True)

        assert os.path.exists(os.path.join(sftp_target.local_dir, "keep", "f"))


# endregion
