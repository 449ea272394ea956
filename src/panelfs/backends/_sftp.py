"""SFTP provider using pure paramiko."""

from __future__ import annotations

import contextlib
import errno
import getpass
import logging
import os
import shutil
import stat
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Optional

from panelfs._capabilities import ALL_CAPABILITIES, CapabilitySet
from panelfs._errors import (
    AlreadyExists,
    InvalidPath,
    NotFound,
    PermissionDenied,
    TransportError,
    VfsError,
)
from panelfs._models import DirEntry
from panelfs._permissions import EXECUTE_BITS
from panelfs._provider import Provider

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from panelfs._path import VfsPath

log = logging.getLogger(__name__)

_DEFAULT_PORT = 22
_DEFAULT_KEY_FILE = "~/.ssh/id_rsa"

# RFC 4253 compliant chunk size for SFTP data transfer
_CHUNK_SIZE = 32768

InteractiveHandler = Callable[[str, str, "list[tuple[str, bool]]"], "list[str]"]


# region: host key policy


class HostKeyPolicy(Enum):
    """Controls how unknown remote host keys are handled.

    :cvar STRICT: Reject unknown hosts (production default).
    :cvar TRUST_ON_FIRST_USE: Save on first connect, verify after.
    :cvar AUTO_ADD: Accept any key (dev/testing ONLY).
    """

    STRICT = "strict"
    TRUST_ON_FIRST_USE = "tofu"
    AUTO_ADD = "auto"


# endregion

# region: attribute helpers


def _timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _longname_owner(attrs: Any) -> tuple[Optional[str], Optional[str]]:
    """Owner and group names from the ``ls -l`` style ``longname`` of a listing."""
    longname = getattr(attrs, "longname", None)
    if not longname:
        return None, None
    tokens = longname.split(None, 8)
    if len(tokens) < 9:
        return None, None
    return tokens[2], tokens[3]


# endregion


class _Session:
    """One SSH connection plus its SFTP channel, serialized by ``lock``."""

    __slots__ = ("lock", "ssh", "sftp")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.ssh: Any = None
        self.sftp: Any = None

    def is_alive(self) -> bool:
        if self.ssh is None or self.sftp is None:
            return False
        transport = self.ssh.get_transport()
        return transport is not None and transport.is_active()

    def close(self) -> None:
        if self.sftp is not None:
            with contextlib.suppress(Exception):
                self.sftp.close()
            self.sftp = None
        if self.ssh is not None:
            with contextlib.suppress(Exception):
                self.ssh.close()
            self.ssh = None


class SFTPProvider(Provider):
    """SFTP provider using pure paramiko.

    Sessions are cached per ``user@host:port`` and shared by every caller.
    Each session has its own lock, held for the duration of every provider
    call against it. Streams returned by ``open_*`` outlive the call and
    rely on paramiko serializing requests on the channel.

    Authentication order: the password carried by the path; otherwise a
    private key file; otherwise the SSH agent and default keys; and, if all
    of those are rejected, keyboard-interactive through ``interactive_handler``.

    :param timeout: SSH connection timeout in seconds.
    :param key_filename: Private key file (default: ``~/.ssh/id_rsa`` when it exists).
    :param host_key_policy: Host key verification policy.
    :param known_hosts_path: Path to known_hosts file (default: ``~/.ssh/known_hosts``).
    :param interactive_handler: Callback ``(title, instructions, prompts) -> answers``
        for keyboard-interactive authentication.
    :param retries: Connection attempts before giving up.
    :param connect_kwargs: Extra kwargs passed to ``SSHClient.connect()``.
    """

    def __init__(
        self,
        *,
        timeout: int = 10,
        key_filename: str | None = None,
        host_key_policy: HostKeyPolicy | str = HostKeyPolicy.STRICT,
        known_hosts_path: str | None = None,
        interactive_handler: InteractiveHandler | None = None,
        retries: int = 3,
        connect_kwargs: dict[str, Any] | None = None,
    ) -> None:
        self._timeout = timeout
        self._key_filename = key_filename
        self._host_key_policy = HostKeyPolicy(host_key_policy)
        self._known_hosts_path = known_hosts_path
        self._interactive_handler = interactive_handler
        self._retries = retries
        self._connect_kwargs = connect_kwargs or {}
        self._sessions: dict[str, _Session] = {}
        self._sessions_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "sftp"

    @property
    def schemes(self) -> Sequence[str]:
        return ("sftp",)

    @property
    def capabilities(self) -> CapabilitySet:
        return ALL_CAPABILITIES

    def can_handle(self, path: VfsPath) -> bool:
        return path.scheme == "sftp"

    # region: sessions

    @staticmethod
    def _username(path: VfsPath) -> str:
        return path.user or getpass.getuser()

    def _session_key(self, path: VfsPath) -> str:
        return f"{self._username(path)}@{path.host}:{path.port or _DEFAULT_PORT}"

    @contextmanager
    def _client(self, path: VfsPath) -> Iterator[Any]:
        """Yield a live SFTP client for ``path``'s server while holding its session lock."""
        if not path.host:
            raise InvalidPath("SFTP path has no host", path=str(path), backend=self.name)
        key = self._session_key(path)
        with self._sessions_lock:
            session = self._sessions.get(key)
            if session is None:
                session = self._sessions[key] = _Session()
        with self._errors(path), session.lock:
            if not session.is_alive():
                if session.ssh is not None:
                    log.info("SFTP session %s is no longer active; reconnecting", key)
                session.close()
                self._connect(path, session)
            yield session.sftp

    def _connect(self, path: VfsPath, session: _Session) -> None:
        """Establish SSH + SFTP connection with tenacity retry."""
        import paramiko
        from tenacity import (
            before_sleep_log,
            retry,
            retry_if_exception_type,
            retry_if_not_exception_type,
            stop_after_attempt,
            wait_exponential,
        )

        host = path.host
        port = path.port or _DEFAULT_PORT
        username = self._username(path)
        ssh = self._create_ssh_client()
        kwargs = {**self._auth_kwargs(path), **self._connect_kwargs}

        @retry(
            retry=(
                retry_if_exception_type((paramiko.SSHException, OSError, EOFError))
                & retry_if_not_exception_type(paramiko.AuthenticationException)
            ),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            before_sleep=before_sleep_log(log, logging.WARNING),  # type: ignore[arg-type,unused-ignore]
            reraise=True,
        )
        def _do_connect() -> None:
            log.info("Connecting to %s:%d as %s", host, port, username)
            ssh.connect(
                hostname=host,
                port=port,
                username=username,
                timeout=self._timeout,
                banner_timeout=self._timeout,
                auth_timeout=self._timeout,
                channel_timeout=self._timeout,
                **kwargs,
            )

        try:
            _do_connect()
        except paramiko.AuthenticationException:
            transport = ssh.get_transport()
            if self._interactive_handler is None or transport is None or not transport.is_active():
                ssh.close()
                raise
            log.info("Falling back to keyboard-interactive authentication for %s", username)
            transport.auth_interactive(username, self._interactive_handler)

        if self._host_key_policy == HostKeyPolicy.TRUST_ON_FIRST_USE:
            self._save_host_keys(ssh)
        session.ssh = ssh
        session.sftp = ssh.open_sftp()
        log.info("SFTP connection established.")

    def _auth_kwargs(self, path: VfsPath) -> dict[str, Any]:
        if path.password is not None:
            return {"password": path.password, "allow_agent": False, "look_for_keys": False}
        key_file = os.path.expanduser(self._key_filename or _DEFAULT_KEY_FILE)
        if os.path.isfile(key_file):
            return {"key_filename": key_file}
        return {"allow_agent": True, "look_for_keys": True}

    def _keys_path(self) -> str:
        return self._known_hosts_path or os.path.expanduser("~/.ssh/known_hosts")

    def _save_host_keys(self, ssh: Any) -> None:
        keys_path = self._keys_path()
        try:
            os.makedirs(os.path.dirname(keys_path) or ".", exist_ok=True)
            ssh.save_host_keys(keys_path)
        except OSError as exc:
            log.warning("Cannot save host keys to %s: %s", keys_path, exc)

    def _create_ssh_client(self) -> Any:
        """Create and configure an SSHClient with host key policy."""
        import paramiko

        ssh = paramiko.SSHClient()

        if self._host_key_policy in (HostKeyPolicy.STRICT, HostKeyPolicy.TRUST_ON_FIRST_USE):
            keys_path = self._keys_path()
            if os.path.isfile(keys_path):
                ssh.load_host_keys(keys_path)

        if self._host_key_policy == HostKeyPolicy.TRUST_ON_FIRST_USE:
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        elif self._host_key_policy == HostKeyPolicy.AUTO_ADD:
            log.warning("AUTO_ADD host key policy -- NOT safe for production.")
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        return ssh

    # endregion

    # region: error mapping

    @contextmanager
    def _errors(self, path: VfsPath) -> Iterator[None]:
        """Map paramiko/OS exceptions to panelfs errors."""
        import paramiko

        where = str(path)
        try:
            yield
        except VfsError:
            raise
        except paramiko.ssh_exception.NoValidConnectionsError as exc:
            raise TransportError(str(exc), path=where, backend=self.name) from None
        except paramiko.AuthenticationException as exc:
            raise PermissionDenied(f"Authentication failed: {exc}", path=where, backend=self.name) from None
        except paramiko.SSHException as exc:
            raise TransportError(str(exc), path=where, backend=self.name) from None
        except (ConnectionError, TimeoutError, EOFError) as exc:
            raise TransportError(f"SFTP connection failed: {exc}", path=where, backend=self.name) from None
        except OSError as exc:
            code = getattr(exc, "errno", None)
            if isinstance(exc, FileNotFoundError) or code == errno.ENOENT:
                raise NotFound(f"Not found: {path}", path=where, backend=self.name) from None
            if isinstance(exc, PermissionError) or code == errno.EACCES:
                raise PermissionDenied(f"Permission denied: {path}", path=where, backend=self.name) from None
            if code == errno.EEXIST:
                raise AlreadyExists(f"Already exists: {path}", path=where, backend=self.name) from None
            raise VfsError(str(exc), path=where, backend=self.name) from None

    # endregion

    # region: helpers

    def _to_entry(self, sftp: Any, path: VfsPath, attrs: Any) -> DirEntry:
        """Convert paramiko SFTPAttributes (from ``lstat``) to a DirEntry."""
        mode = attrs.st_mode or 0
        is_link = stat.S_ISLNK(mode)
        is_dir = stat.S_ISDIR(mode)
        target = None
        if is_link:
            try:
                target = sftp.readlink(path.path)
                is_dir = stat.S_ISDIR(sftp.stat(path.path).st_mode or 0)
            except OSError as exc:
                log.debug("Cannot resolve symlink %s: %s", path, exc)
        name = path.name or "/"
        perms = stat.S_IMODE(mode)
        owner, group = _longname_owner(attrs)
        return DirEntry(
            name=name,
            path=path,
            size=0 if is_dir else int(attrs.st_size or 0),
            modified_at=_timestamp(attrs.st_mtime),
            accessed_at=_timestamp(attrs.st_atime),
            is_dir=is_dir,
            is_symlink=is_link,
            symlink_target=target,
            is_hidden=name.startswith("."),
            is_executable=not is_dir and bool(perms & EXECUTE_BITS),
            permissions=perms,
            uid=attrs.st_uid or 0,
            gid=attrs.st_gid or 0,
            owner_name=owner,
            group_name=group,
        )

    @staticmethod
    def _remote(path: VfsPath) -> str:
        return path.path or "/"

    @staticmethod
    def _is_dir(sftp: Any, remote: str) -> bool:
        try:
            return stat.S_ISDIR(sftp.stat(remote).st_mode or 0)
        except OSError:
            return False

    def _makedirs(self, sftp: Any, remote: str) -> None:
        """Create ``remote`` and any missing parents, walking down from ``/``."""
        current = ""
        for part in remote.strip("/").split("/"):
            current = f"{current}/{part}"
            if not self._is_dir(sftp, current):
                sftp.mkdir(current)

    def _rmtree(self, sftp: Any, remote: str) -> None:
        """Recursively remove a directory tree, bottom-up. Symlinks are removed, not followed."""
        for attrs in sftp.listdir_attr(remote):
            child = f"{remote.rstrip('/')}/{attrs.filename}"
            if stat.S_ISDIR(attrs.st_mode or 0):
                self._rmtree(sftp, child)
            else:
                sftp.remove(child)
        sftp.rmdir(remote)

    def _same_session(self, a: VfsPath, b: VfsPath) -> bool:
        return a.host == b.host and self._session_key(a) == self._session_key(b)

    # endregion

    # region: directory operations

    def list_directory(self, path: VfsPath) -> list[DirEntry]:
        remote = self._remote(path)
        with self._client(path) as sftp:
            if not self._is_dir(sftp, remote):
                raise NotFound(f"Directory not found: {path}", path=str(path), backend=self.name)
            entries: list[DirEntry] = []
            if remote != "/":
                entries.append(DirEntry(name="..", path=path.parent(), is_dir=True))
            for attrs in sftp.listdir_attr(remote):
                if attrs.filename in (".", ".."):
                    continue
                entries.append(self._to_entry(sftp, path.combine(attrs.filename), attrs))
            return entries

    def directory_exists(self, path: VfsPath) -> bool:
        with self._client(path) as sftp:
            return self._is_dir(sftp, self._remote(path))

    def create_directory(self, path: VfsPath) -> None:
        with self._client(path) as sftp:
            self._makedirs(sftp, self._remote(path))

    def delete_directory(self, path: VfsPath, *, recursive: bool = False) -> None:
        remote = self._remote(path)
        with self._client(path) as sftp:
            if not self._is_dir(sftp, remote):
                raise NotFound(f"Directory not found: {path}", path=str(path), backend=self.name)
            if recursive:
                self._rmtree(sftp, remote)
                return
            if sftp.listdir(remote):
                raise VfsError(f"Directory not empty: {path}", path=str(path), backend=self.name)
            sftp.rmdir(remote)

    # endregion

    # region: file operations

    def file_exists(self, path: VfsPath) -> bool:
        with self._client(path) as sftp:
            try:
                attrs = sftp.stat(self._remote(path))
            except OSError:
                return False
            return not stat.S_ISDIR(attrs.st_mode or 0)

    def open_read(self, path: VfsPath) -> BinaryIO:
        with self._client(path) as sftp:
            return sftp.open(self._remote(path), "rb")  # type: ignore[no-any-return]

    def open_write(self, path: VfsPath) -> BinaryIO:
        with self._client(path) as sftp:
            handle = sftp.open(self._remote(path), "wb")
            handle.set_pipelined(True)
            return handle  # type: ignore[no-any-return]

    def open_append(self, path: VfsPath) -> BinaryIO:
        with self._client(path) as sftp:
            handle = sftp.open(self._remote(path), "ab")
            handle.set_pipelined(True)
            return handle  # type: ignore[no-any-return]

    def delete_file(self, path: VfsPath) -> None:
        with self._client(path) as sftp:
            sftp.remove(self._remote(path))

    def copy_file(self, source: VfsPath, destination: VfsPath) -> None:
        if not self._same_session(source, destination):
            with self.open_read(source) as src_f, self.open_write(destination) as dst_f:
                shutil.copyfileobj(src_f, dst_f, _CHUNK_SIZE)
            return
        # No server-side copy in SFTP; stream through the client on one session.
        with self._client(source) as sftp:
            with sftp.open(self._remote(source), "rb") as src_f, sftp.open(self._remote(destination), "wb") as dst_f:
                shutil.copyfileobj(src_f, dst_f, _CHUNK_SIZE)

    def move_file(self, source: VfsPath, destination: VfsPath) -> None:
        if not self._same_session(source, destination):
            self.copy_file(source, destination)
            self.delete_file(source)
            return
        src_remote = self._remote(source)
        dst_remote = self._remote(destination)
        with self._client(source) as sftp:
            try:
                sftp.posix_rename(src_remote, dst_remote)
            except OSError:
                log.debug("posix_rename unsupported, falling back to rename for %s", source)
                sftp.rename(src_remote, dst_remote)

    def create_symlink(self, target: VfsPath, link: VfsPath) -> None:
        with self._client(link) as sftp:
            sftp.symlink(target.path, self._remote(link))

    # endregion

    # region: metadata

    def stat(self, path: VfsPath) -> DirEntry:
        with self._client(path) as sftp:
            attrs = sftp.lstat(self._remote(path))
            return self._to_entry(sftp, path, attrs)

    def set_permissions(self, path: VfsPath, mode: int) -> None:
        with self._client(path) as sftp:
            sftp.chmod(self._remote(path), mode & 0o7777)

    def set_owner(self, path: VfsPath, uid: int, gid: int) -> None:
        with self._client(path) as sftp:
            sftp.chown(self._remote(path), uid, gid)

    def set_modification_time(self, path: VfsPath, when: datetime) -> None:
        remote = self._remote(path)
        with self._client(path) as sftp:
            attrs = sftp.stat(remote)
            atime = attrs.st_atime if attrs.st_atime is not None else when.timestamp()
            sftp.utime(remote, (atime, when.timestamp()))

    # endregion

    # region: lifecycle

    def close(self) -> None:
        with self._sessions_lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            with session.lock:
                session.close()

    # endregion
