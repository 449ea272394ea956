"""Local filesystem provider: stdlib-only mapping to native calls."""

from __future__ import annotations

import errno
import logging
import os
import shutil
import stat
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, BinaryIO

from panelfs._capabilities import ALL_CAPABILITIES, Capability, CapabilitySet
from panelfs._errors import AlreadyExists, NotFound, PermissionDenied, VfsError
from panelfs._models import DirEntry
from panelfs._permissions import EXECUTE_BITS
from panelfs._provider import Provider

try:
    import grp
    import pwd
except ImportError:  # pragma: no cover -- Windows
    grp = None  # type: ignore[assignment]
    pwd = None  # type: ignore[assignment]

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from panelfs._path import VfsPath

log = logging.getLogger(__name__)

_FILE_ATTRIBUTE_HIDDEN = 0x2
_HAS_POSIX_MODES = os.name == "posix"

if hasattr(os, "lchown"):
    _LOCAL_CAPABILITIES = ALL_CAPABILITIES
else:  # pragma: no cover -- Windows
    _LOCAL_CAPABILITIES = CapabilitySet(c for c in Capability if c is not Capability.CHOWN)


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _owner_name(uid: int) -> str | None:
    if pwd is None:
        return None
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return None


def _group_name(gid: int) -> str | None:
    if grp is None:
        return None
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return None


class LocalProvider(Provider):
    """Provider for the native filesystem.

    Claims every local path, so it must be registered after the archive
    providers that narrow-match archive file names.
    """

    @property
    def name(self) -> str:
        return "local"

    @property
    def schemes(self) -> Sequence[str]:
        return ("local", "file")

    @property
    def capabilities(self) -> CapabilitySet:
        return _LOCAL_CAPABILITIES

    def can_handle(self, path: VfsPath) -> bool:
        return path.is_local

    # region: error mapping
    @contextmanager
    def _errors(self, path: VfsPath) -> Iterator[None]:
        """Map OS exceptions to panelfs errors."""
        try:
            yield
        except VfsError:
            raise
        except FileNotFoundError:
            raise NotFound(f"Not found: {path}", path=str(path), backend=self.name) from None
        except FileExistsError:
            raise AlreadyExists(f"Already exists: {path}", path=str(path), backend=self.name) from None
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {path}", path=str(path), backend=self.name) from None
        except OSError as exc:
            if exc.errno == errno.ENOTEMPTY:
                raise VfsError(f"Directory not empty: {path}", path=str(path), backend=self.name) from None
            raise VfsError(exc.strerror or str(exc), path=str(path), backend=self.name) from None

    # endregion

    # region: helpers
    def _entry(self, path: VfsPath) -> DirEntry:
        """Build a DirEntry from ``lstat`` (and ``stat`` for symlink targets)."""
        full = path.path
        lst = os.lstat(full)
        is_link = stat.S_ISLNK(lst.st_mode)
        st = lst
        target = None
        if is_link:
            target = os.readlink(full)
            try:
                st = os.stat(full)
            except FileNotFoundError:
                log.debug("Dangling symlink %s -> %s", full, target)
        is_dir = stat.S_ISDIR(st.st_mode)
        mode = stat.S_IMODE(st.st_mode) if _HAS_POSIX_MODES else 0
        name = path.name or path.path
        hidden = name.startswith(".") or bool(getattr(st, "st_file_attributes", 0) & _FILE_ATTRIBUTE_HIDDEN)
        return DirEntry(
            name=name,
            path=path,
            size=0 if is_dir else st.st_size,
            modified_at=_timestamp(st.st_mtime),
            accessed_at=_timestamp(st.st_atime),
            created_at=_timestamp(getattr(st, "st_birthtime", st.st_ctime)),
            is_dir=is_dir,
            is_symlink=is_link,
            symlink_target=target,
            is_hidden=hidden,
            is_executable=not is_dir and bool(mode & EXECUTE_BITS),
            permissions=mode,
            uid=st.st_uid,
            gid=st.st_gid,
            owner_name=_owner_name(st.st_uid),
            group_name=_group_name(st.st_gid),
            inode=st.st_ino,
            hard_links=st.st_nlink,
        )

    @staticmethod
    def _is_filesystem_root(full: str) -> bool:
        return os.path.dirname(full) == full

    # endregion

    # region: directory operations
    def list_directory(self, path: VfsPath) -> list[DirEntry]:
        full = path.path
        with self._errors(path):
            if not os.path.isdir(full):
                raise NotFound(f"Directory not found: {path}", path=str(path), backend=self.name)
            entries: list[DirEntry] = []
            if not path.is_root and not self._is_filesystem_root(full):
                entries.append(DirEntry(name="..", path=path.parent(), is_dir=True))

            dirs: list[str] = []
            files: list[str] = []
            with os.scandir(full) as it:
                for child in it:
                    try:
                        is_dir = child.is_dir()
                    except OSError:
                        is_dir = False
                    (dirs if is_dir else files).append(child.name)

        for child_name in dirs + files:
            try:
                entries.append(self._entry(path.combine(child_name)))
            except OSError as exc:
                log.debug("Skipping unreadable entry %s in %s: %s", child_name, full, exc)
        return entries

    def directory_exists(self, path: VfsPath) -> bool:
        return os.path.isdir(path.path)

    def create_directory(self, path: VfsPath) -> None:
        with self._errors(path):
            os.makedirs(path.path, exist_ok=True)

    def delete_directory(self, path: VfsPath, *, recursive: bool = False) -> None:
        full = path.path
        with self._errors(path):
            if not os.path.lexists(full):
                raise NotFound(f"Directory not found: {path}", path=str(path), backend=self.name)
            if not os.path.isdir(full):
                raise NotFound(f"Not a directory: {path}", path=str(path), backend=self.name)
            if recursive:
                shutil.rmtree(full)
            else:
                os.rmdir(full)

    # endregion

    # region: file operations
    def file_exists(self, path: VfsPath) -> bool:
        return os.path.lexists(path.path) and not os.path.isdir(path.path)

    def open_read(self, path: VfsPath) -> BinaryIO:
        with self._errors(path):
            return open(path.path, "rb")  # noqa: SIM115

    def open_write(self, path: VfsPath) -> BinaryIO:
        with self._errors(path):
            parent = os.path.dirname(path.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            return open(path.path, "wb")  # noqa: SIM115

    def open_append(self, path: VfsPath) -> BinaryIO:
        with self._errors(path):
            return open(path.path, "ab")  # noqa: SIM115

    def delete_file(self, path: VfsPath) -> None:
        with self._errors(path):
            os.remove(path.path)

    def copy_file(self, source: VfsPath, destination: VfsPath) -> None:
        with self._errors(source):
            parent = os.path.dirname(destination.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            shutil.copy2(source.path, destination.path)

    def move_file(self, source: VfsPath, destination: VfsPath) -> None:
        # os.replace fails with EXDEV across devices; callers fall back to copy + delete.
        with self._errors(source):
            os.replace(source.path, destination.path)

    def create_symlink(self, target: VfsPath, link: VfsPath) -> None:
        with self._errors(link):
            os.symlink(target.path, link.path, target_is_directory=os.path.isdir(target.path))

    # endregion

    # region: metadata
    def stat(self, path: VfsPath) -> DirEntry:
        with self._errors(path):
            return self._entry(path)

    def set_permissions(self, path: VfsPath, mode: int) -> None:
        with self._errors(path):
            os.chmod(path.path, stat.S_IMODE(mode))

    def set_owner(self, path: VfsPath, uid: int, gid: int) -> None:
        self.capabilities.require(Capability.CHOWN, backend=self.name, path=str(path))
        with self._errors(path):
            os.lchown(path.path, uid, gid)

    def set_modification_time(self, path: VfsPath, when: datetime) -> None:
        with self._errors(path):
            st = os.stat(path.path)
            os.utime(path.path, (st.st_atime, when.timestamp()))

    # endregion

    def is_absolute(self, path: VfsPath) -> bool:
        return os.path.isabs(path.path)
