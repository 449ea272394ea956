"""FTP provider using the standard-library ``ftplib`` client."""

from __future__ import annotations

import ftplib
import io
import logging
import shutil
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, BinaryIO, Optional

from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from panelfs._capabilities import Capability, CapabilitySet
from panelfs._errors import InvalidPath, NotFound, PermissionDenied, TransportError, VfsError
from panelfs._models import DirEntry
from panelfs._permissions import EXECUTE_BITS, parse_mode_string
from panelfs._provider import Provider

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from panelfs._path import VfsPath

log = logging.getLogger(__name__)

_FTP_CAPABILITIES = CapabilitySet(c for c in Capability if c not in (Capability.SYMLINK, Capability.CHOWN))

_DEFAULT_PORT = 21
_CHUNK_SIZE = 64 * 1024
_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


# region: LIST parsing


def _parse_list_date(month: str, day: str, time_or_year: str, now: datetime) -> Optional[datetime]:
    """Parse the ``Mon DD HH:MM`` / ``Mon DD YYYY`` columns of an ``ls -l`` line.

    ``HH:MM`` means within the last six months, so the year is the current
    one unless that would put the date in the future.
    """
    try:
        mon = _MONTHS.index(month[:3].lower()) + 1
        mday = int(day)
        if ":" in time_or_year:
            hour, _, minute = time_or_year.partition(":")
            stamp = datetime(now.year, mon, mday, int(hour), int(minute), tzinfo=timezone.utc)
            if stamp > now + timedelta(days=1):
                stamp = stamp.replace(year=now.year - 1)
            return stamp
        return datetime(int(time_or_year), mon, mday, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_list_line(line: str, directory: VfsPath, *, now: Optional[datetime] = None) -> Optional[DirEntry]:
    """Parse one Unix ``ls -l`` style line of a ``LIST`` response.

    Returns ``None`` for lines that are not entries (``total``, ``.``,
    ``..``, or anything with fewer than nine columns or a non-numeric link
    count).

    :param line: Raw response line.
    :param directory: The listed directory; entry paths are combined from it.
    :param now: Reference time for year-less dates (default: current UTC time).
    """
    tokens = line.split(None, 8)
    if len(tokens) < 9 or not tokens[1].isdigit():
        return None
    perms, links, owner, group, size_text, month, day, time_or_year, name = tokens
    is_dir = perms.startswith("d")
    is_link = perms.startswith("l")
    target = None
    if is_link and " -> " in name:
        name, target = name.split(" -> ", 1)
    if name in (".", ".."):
        return None
    try:
        size = int(size_text)
    except ValueError:
        size = 0
    mode = parse_mode_string(perms)
    return DirEntry(
        name=name,
        path=directory.combine(name),
        size=0 if is_dir else size,
        modified_at=_parse_list_date(month, day, time_or_year, now or datetime.now(tz=timezone.utc)),
        is_dir=is_dir,
        is_symlink=is_link,
        symlink_target=target,
        is_hidden=name.startswith("."),
        is_executable=not is_dir and bool(mode & EXECUTE_BITS),
        permissions=mode,
        uid=int(owner) if owner.isdigit() else 0,
        gid=int(group) if group.isdigit() else 0,
        owner_name=owner,
        group_name=group,
        hard_links=int(links),
    )


# endregion


class _TransferStream(io.RawIOBase):
    """Raw stream over one FTP data connection.

    Owns its control connection. Closing it completes the transfer
    (reads the final reply) and logs out.
    """

    def __init__(self, provider: FTPProvider, path: VfsPath, ftp: ftplib.FTP, conn: object, *, writing: bool) -> None:
        super().__init__()
        self._provider = provider
        self._path = path
        self._ftp = ftp
        self._conn = conn
        self._writing = writing
        self._eof = False

    def readable(self) -> bool:
        return not self._writing

    def writable(self) -> bool:
        return self._writing

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        with self._provider._errors(self._path):
            count = self._conn.recv_into(buffer)  # type: ignore[attr-defined]
        if count == 0:
            self._eof = True
        return count

    def write(self, data: bytes | bytearray | memoryview) -> int:  # type: ignore[override]
        with self._provider._errors(self._path):
            self._conn.sendall(data)  # type: ignore[attr-defined]
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            with self._provider._errors(self._path):
                self._conn.close()  # type: ignore[attr-defined]
                if self._writing or self._eof:
                    self._ftp.voidresp()
                else:
                    log.debug("Read of %s closed before end of data; dropping transfer", self._path)
        finally:
            self._provider._quit(self._ftp)
            super().close()


class FTPProvider(Provider):
    """FTP provider. Every operation opens a fresh control connection.

    Credentials, host and port come from the path itself; a path without a
    user logs in anonymously.

    :param timeout: Socket timeout in seconds.
    :param passive: Use passive mode data connections.
    :param encoding: Control-channel encoding when the path has no ``#enc:`` hint.
    :param retries: Connection attempts before giving up.
    """

    def __init__(
        self,
        *,
        timeout: float = 30,
        passive: bool = True,
        encoding: str = "utf-8",
        retries: int = 3,
    ) -> None:
        self._timeout = timeout
        self._passive = passive
        self._encoding = encoding
        self._retries = retries

    @property
    def name(self) -> str:
        return "ftp"

    @property
    def schemes(self) -> Sequence[str]:
        return ("ftp",)

    @property
    def capabilities(self) -> CapabilitySet:
        return _FTP_CAPABILITIES

    def can_handle(self, path: VfsPath) -> bool:
        return path.scheme == "ftp"

    # region: connection
    def _connect(self, path: VfsPath) -> ftplib.FTP:
        """Open and log in a control connection, retrying transient failures."""
        if not path.host:
            raise InvalidPath("FTP path has no host", path=str(path), backend=self.name)
        host = path.host
        port = path.port or _DEFAULT_PORT
        user = path.user or "anonymous"
        password = path.password if path.password is not None else ("" if path.user else "anonymous@")

        @retry(
            retry=retry_if_exception_type((OSError, EOFError, ftplib.error_temp)),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=5),
            before_sleep=before_sleep_log(log, logging.WARNING),  # type: ignore[arg-type,unused-ignore]
            reraise=True,
        )
        def _do_connect() -> ftplib.FTP:
            log.debug("Connecting to ftp://%s:%d as %s", host, port, user)
            ftp = ftplib.FTP(timeout=self._timeout, encoding=path.encoding or self._encoding)
            try:
                ftp.connect(host, port)
                ftp.login(user, password)
                ftp.set_pasv(self._passive)
                ftp.voidcmd("TYPE I")
            except Exception:
                ftp.close()
                raise
            return ftp

        return _do_connect()

    def _quit(self, ftp: ftplib.FTP) -> None:
        """Log out politely, falling back to dropping the socket."""
        try:
            ftp.quit()
        except (ftplib.Error, OSError, EOFError) as exc:
            log.debug("FTP QUIT failed, closing socket: %s", exc)
            ftp.close()

    @contextmanager
    def _session(self, path: VfsPath) -> Iterator[ftplib.FTP]:
        """One connection for the duration of a single provider call."""
        with self._errors(path):
            ftp = self._connect(path)
            try:
                yield ftp
            finally:
                self._quit(ftp)

    # endregion

    # region: error mapping
    @contextmanager
    def _errors(self, path: VfsPath) -> Iterator[None]:
        """Map ftplib and socket exceptions to panelfs errors."""
        try:
            yield
        except VfsError:
            raise
        except ftplib.error_perm as exc:
            reply = str(exc)
            if reply.startswith("550"):
                raise NotFound(f"Not found: {path}", path=str(path), backend=self.name) from None
            if reply.startswith("530"):
                raise PermissionDenied(f"Login or access denied: {reply}", path=str(path), backend=self.name) from None
            raise VfsError(reply, path=str(path), backend=self.name) from None
        except ftplib.error_temp as exc:
            raise TransportError(str(exc), path=str(path), backend=self.name) from None
        except ftplib.Error as exc:
            raise VfsError(str(exc), path=str(path), backend=self.name) from None
        except (OSError, EOFError) as exc:
            raise TransportError(f"FTP connection failed: {exc}", path=str(path), backend=self.name) from None

    # endregion

    # region: helpers
    def _list(self, ftp: ftplib.FTP, directory: VfsPath) -> list[DirEntry]:
        lines: list[str] = []
        ftp.retrlines(f"LIST {directory.path}", lines.append)
        now = datetime.now(tz=timezone.utc)
        entries = []
        for line in lines:
            entry = parse_list_line(line, directory, now=now)
            if entry is not None:
                entries.append(entry)
        return entries

    @staticmethod
    def _is_dir(ftp: ftplib.FTP, remote: str) -> bool:
        try:
            ftp.cwd(remote or "/")
        except ftplib.error_perm:
            return False
        return True

    @staticmethod
    def _mdtm(ftp: ftplib.FTP, remote: str) -> Optional[datetime]:
        try:
            reply = ftp.sendcmd(f"MDTM {remote}")
        except ftplib.error_perm:
            return None
        try:
            return datetime.strptime(reply[4:18], _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            return None

    def _makedirs(self, ftp: ftplib.FTP, remote: str) -> None:
        current = ""
        for part in remote.strip("/").split("/"):
            current = f"{current}/{part}"
            if not self._is_dir(ftp, current):
                ftp.mkd(current)

    def _rmtree(self, ftp: ftplib.FTP, directory: VfsPath) -> None:
        for entry in self._list(ftp, directory):
            if entry.is_dir and not entry.is_symlink:
                self._rmtree(ftp, entry.path)
            else:
                ftp.delete(entry.path.path)
        ftp.rmd(directory.path)

    @staticmethod
    def _same_server(a: VfsPath, b: VfsPath) -> bool:
        return (a.host, a.port, a.user, a.password) == (b.host, b.port, b.user, b.password)

    def _open_transfer(self, path: VfsPath, command: str, *, writing: bool) -> BinaryIO:
        with self._errors(path):
            ftp = self._connect(path)
            try:
                conn = ftp.transfercmd(f"{command} {path.path}")
            except Exception:
                self._quit(ftp)
                raise
        raw = _TransferStream(self, path, ftp, conn, writing=writing)
        if writing:
            return io.BufferedWriter(raw, _CHUNK_SIZE)  # type: ignore[return-value]
        return io.BufferedReader(raw, _CHUNK_SIZE)  # type: ignore[return-value]

    # endregion

    # region: directory operations
    def list_directory(self, path: VfsPath) -> list[DirEntry]:
        with self._session(path) as ftp:
            if not self._is_dir(ftp, path.path):
                raise NotFound(f"Directory not found: {path}", path=str(path), backend=self.name)
            return self._list(ftp, path)

    def directory_exists(self, path: VfsPath) -> bool:
        with self._session(path) as ftp:
            return self._is_dir(ftp, path.path)

    def create_directory(self, path: VfsPath) -> None:
        with self._session(path) as ftp:
            self._makedirs(ftp, path.path)

    def delete_directory(self, path: VfsPath, *, recursive: bool = False) -> None:
        with self._session(path) as ftp:
            if not self._is_dir(ftp, path.path):
                raise NotFound(f"Directory not found: {path}", path=str(path), backend=self.name)
            if recursive:
                self._rmtree(ftp, path)
            else:
                ftp.rmd(path.path)

    # endregion

    # region: file operations
    def file_exists(self, path: VfsPath) -> bool:
        with self._session(path) as ftp:
            try:
                return ftp.size(path.path) is not None
            except ftplib.error_perm:
                return False

    def open_read(self, path: VfsPath) -> BinaryIO:
        return self._open_transfer(path, "RETR", writing=False)

    def open_write(self, path: VfsPath) -> BinaryIO:
        return self._open_transfer(path, "STOR", writing=True)

    def open_append(self, path: VfsPath) -> BinaryIO:
        return self._open_transfer(path, "APPE", writing=True)

    def delete_file(self, path: VfsPath) -> None:
        with self._session(path) as ftp:
            ftp.delete(path.path)

    def copy_file(self, source: VfsPath, destination: VfsPath) -> None:
        # FTP has no server-side copy; download and re-upload on two connections.
        with self.open_read(source) as src, self.open_write(destination) as dst:
            shutil.copyfileobj(src, dst, _CHUNK_SIZE)

    def move_file(self, source: VfsPath, destination: VfsPath) -> None:
        if not self._same_server(source, destination):
            self.copy_file(source, destination)
            self.delete_file(source)
            return
        with self._session(source) as ftp:
            ftp.rename(source.path, destination.path)

    def create_symlink(self, target: VfsPath, link: VfsPath) -> None:
        self.capabilities.require(Capability.SYMLINK, backend=self.name, path=str(link))

    # endregion

    # region: metadata
    def stat(self, path: VfsPath) -> DirEntry:
        with self._session(path) as ftp:
            if path.is_root:
                return DirEntry(name="/", path=path, is_dir=True)
            name = path.name
            parent = path.parent()
            if self._is_dir(ftp, parent.path):
                for entry in self._list(ftp, parent):
                    if entry.name == name:
                        return entry
            if self._is_dir(ftp, path.path):
                return DirEntry(name=name, path=path, is_dir=True, is_hidden=name.startswith("."))
            try:
                size = ftp.size(path.path)
            except ftplib.error_perm:
                raise NotFound(f"Not found: {path}", path=str(path), backend=self.name) from None
            return DirEntry(
                name=name,
                path=path,
                size=size or 0,
                modified_at=self._mdtm(ftp, path.path),
                is_hidden=name.startswith("."),
            )

    def set_permissions(self, path: VfsPath, mode: int) -> None:
        with self._session(path) as ftp:
            try:
                ftp.sendcmd(f"SITE CHMOD {mode & 0o7777:o} {path.path}")
            except ftplib.error_perm as exc:
                log.debug("SITE CHMOD not supported for %s: %s", path, exc)

    def set_owner(self, path: VfsPath, uid: int, gid: int) -> None:
        self.capabilities.require(Capability.CHOWN, backend=self.name, path=str(path))

    def set_modification_time(self, path: VfsPath, when: datetime) -> None:
        stamp = when.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)
        with self._session(path) as ftp:
            try:
                ftp.sendcmd(f"MFMT {stamp} {path.path}")
            except ftplib.error_perm as exc:
                log.debug("MFMT not supported for %s: %s", path, exc)

    # endregion
