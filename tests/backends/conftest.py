"""Backend test fixtures for the in-process SFTP server."""

from __future__ import annotations

import os
import shutil
import tempfile
import uuid
from typing import TYPE_CHECKING, NamedTuple

import pytest

if TYPE_CHECKING:
    from collections.abc import Iterator

    from tests.backends.sftp_server import RunningServer


class SFTPTarget(NamedTuple):
    """One test's private directory on the shared SFTP server."""

    port: int
    remote_dir: str
    local_dir: str
    known_hosts_entry: str


@pytest.fixture(scope="session")
def sftp_server() -> Iterator[tuple[RunningServer, str]]:
    """Start an in-process SFTP server for the test session."""
    pytest.importorskip("paramiko")
    from tests.backends.sftp_server import start_sftp_server, stop_sftp_server

    root = os.path.realpath(tempfile.mkdtemp(prefix="panelfs_sftp_"))
    server = start_sftp_server(root)
    yield server, root
    stop_sftp_server(server)
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def sftp_target(sftp_server: tuple[RunningServer, str]) -> SFTPTarget:
    server, root = sftp_server
    name = f"t_{uuid.uuid4().hex[:8]}"
    local_dir = os.path.join(root, name)
    os.mkdir(local_dir)
    entry = f"[127.0.0.1]:{server.port} {server.host_key.get_name()} {server.host_key.get_base64()}"
    return SFTPTarget(server.port, f"/{name}", local_dir, entry)
