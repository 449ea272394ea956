"""Shared base for read-only archive providers (TAR, ZIP)."""

from __future__ import annotations

import abc
import io
import logging
import os
import shutil
from contextlib import contextmanager
from typing import TYPE_CHECKING, BinaryIO, ClassVar, NamedTuple, Optional

from panelfs._capabilities import READ_ONLY_CAPABILITIES, Capability, CapabilitySet
from panelfs._errors import NotFound, PermissionDenied, UnsupportedOperation, VfsError
from panelfs._models import DirEntry
from panelfs._path import VfsPath
from panelfs._permissions import EXECUTE_BITS
from panelfs._provider import Provider
from panelfs.backends._local import LocalProvider

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from datetime import datetime

log = logging.getLogger(__name__)

_COPY_CHUNK = 64 * 1024


class ArchiveMember(NamedTuple):
    """One entry as read from an archive's table of contents.

    ``name`` is normalized: no leading ``./`` or ``/`` and no trailing ``/``.
    """

    name: str
    is_dir: bool
    size: int = 0
    modified_at: Optional[datetime] = None
    mode: int = 0
    uid: int = 0
    gid: int = 0
    owner_name: Optional[str] = None
    group_name: Optional[str] = None
    is_symlink: bool = False
    symlink_target: Optional[str] = None


def normalize_member_name(name: str) -> str:
    """Strip ``./`` and ``/`` prefixes and trailing slashes from a member name."""
    while name.startswith("./"):
        name = name[2:]
    return name.strip("/")


class ArchiveProvider(Provider):
    """Exposes an archive file as a read-only directory tree.

    Entries are addressed with composite paths ``"<archive-file>|/<entry>"``.
    Every call rescans the archive; there is no index.

    A path naming the archive file itself (no ``|``) lists as the archive
    root, while file-level operations on it act on the container file
    through an embedded :class:`LocalProvider`. This lets a panel copy,
    move or delete an archive like any other file.

    Subclasses set :attr:`scheme` and :attr:`suffixes` and implement
    :meth:`_scan` and :meth:`_extract`.
    """

    scheme: ClassVar[str]
    suffixes: ClassVar[tuple[str, ...]]
    _format_errors: ClassVar[tuple[type[Exception], ...]] = ()

    def __init__(self) -> None:
        self._container = LocalProvider()

    @property
    def name(self) -> str:
        return self.scheme

    @property
    def schemes(self) -> Sequence[str]:
        return (self.scheme,)

    @property
    def capabilities(self) -> CapabilitySet:
        return READ_ONLY_CAPABILITIES

    def can_handle(self, path: VfsPath) -> bool:
        if path.scheme == self.scheme:
            return True
        # A directory that merely carries an archive suffix stays with the local provider.
        return path.is_local and self.matches_suffix(path.path) and not os.path.isdir(path.path)

    @classmethod
    def matches_suffix(cls, filename: str) -> bool:
        return filename.lower().endswith(cls.suffixes)

    # region: format hooks
    @abc.abstractmethod
    def _scan(self, archive_file: str) -> Iterator[ArchiveMember]:
        """Yield every member of ``archive_file`` in archive order.

        :raises NotFound: If the archive file does not exist.
        :raises VfsError: If the archive is corrupt.
        """

    @abc.abstractmethod
    def _extract(self, archive_file: str, inner: str) -> bytes:
        """Return the decompressed bytes of member ``inner``.

        :raises NotFound: If no regular-file member has that name.
        """

    # endregion

    # region: helpers
    @staticmethod
    def _is_bare(path: VfsPath) -> bool:
        return not path.is_archive_entry

    def _is_plain_directory(self, path: VfsPath) -> bool:
        """True for a bare path that is not an existing archive file."""
        return self._is_bare(path) and not os.path.isfile(path.path)

    @staticmethod
    def _local(path: VfsPath) -> VfsPath:
        return VfsPath.from_local(path.archive_parts[0])

    def _child(self, outer: str, inner: str) -> VfsPath:
        return VfsPath.archive(self.scheme, outer, inner)

    def _read_only(self, cap: Capability, path: VfsPath) -> UnsupportedOperation:
        return UnsupportedOperation(
            f"Archive entries are read-only: cannot {cap.value}",
            path=str(path),
            backend=self.name,
            capability=cap.value,
        )

    @contextmanager
    def _errors(self, archive_file: str) -> Iterator[None]:
        """Map OS and format exceptions raised while reading ``archive_file``."""
        try:
            yield
        except VfsError:
            raise
        except FileNotFoundError:
            raise NotFound(f"Archive not found: {archive_file}", path=archive_file, backend=self.name) from None
        except PermissionError:
            raise PermissionDenied(
                f"Permission denied: {archive_file}", path=archive_file, backend=self.name
            ) from None
        except self._format_errors as exc:
            raise VfsError(f"Corrupt {self.name} archive: {exc}", path=archive_file, backend=self.name) from None
        except OSError as exc:
            raise VfsError(exc.strerror or str(exc), path=archive_file, backend=self.name) from None

    def _check_archive(self, outer: str, path: VfsPath) -> None:
        if not os.path.isfile(outer):
            raise NotFound(f"Archive not found: {outer}", path=str(path), backend=self.name)

    def _member_entry(self, outer: str, member: ArchiveMember) -> DirEntry:
        name = member.name.rsplit("/", 1)[-1]
        return DirEntry(
            name=name,
            path=self._child(outer, member.name),
            size=0 if member.is_dir else member.size,
            modified_at=member.modified_at,
            is_dir=member.is_dir,
            is_symlink=member.is_symlink,
            symlink_target=member.symlink_target,
            is_hidden=name.startswith("."),
            is_executable=not member.is_dir and bool(member.mode & EXECUTE_BITS),
            permissions=member.mode,
            uid=member.uid,
            gid=member.gid,
            owner_name=member.owner_name,
            group_name=member.group_name,
        )

    def _implied_dir(self, outer: str, inner: str) -> DirEntry:
        return DirEntry(name=inner.rsplit("/", 1)[-1], path=self._child(outer, inner), is_dir=True)

    def _root_entry(self, outer: str) -> DirEntry:
        container = self._container.stat(VfsPath.from_local(outer))
        return DirEntry(
            name=os.path.basename(outer),
            path=self._child(outer, ""),
            modified_at=container.modified_at,
            is_dir=True,
        )

    def _find(self, outer: str, inner: str) -> DirEntry | None:
        """Locate ``inner`` by scanning; implied directories count."""
        prefix = inner + "/"
        implied = False
        for member in self._scan(outer):
            if member.name == inner:
                return self._member_entry(outer, member)
            if not implied and member.name.startswith(prefix):
                implied = True
        if implied:
            return self._implied_dir(outer, inner)
        return None

    # endregion

    # region: directory operations
    def list_directory(self, path: VfsPath) -> list[DirEntry]:
        if self._is_plain_directory(path):
            return self._container.list_directory(self._local(path))
        outer, inner = path.archive_parts
        self._check_archive(outer, path)
        prefix = inner + "/" if inner else ""
        explicit: dict[str, ArchiveMember] = {}
        implied: dict[str, None] = {}
        found = not inner
        for member in self._scan(outer):
            if inner and member.name == inner:
                if not member.is_dir:
                    raise NotFound(f"Not a directory: {path}", path=str(path), backend=self.name)
                found = True
                continue
            if not member.name.startswith(prefix):
                continue
            found = True
            rest = member.name[len(prefix) :]
            if not rest:
                continue
            child, sep, _ = rest.partition("/")
            if sep:
                implied.setdefault(child, None)
            else:
                explicit.setdefault(child, member)
        if not found:
            raise NotFound(f"Directory not found: {path}", path=str(path), backend=self.name)

        entries: list[DirEntry] = []
        for child in dict.fromkeys([*explicit, *implied]):
            child_inner = f"{prefix}{child}"
            member = explicit.get(child)
            if member is None:
                entries.append(self._implied_dir(outer, child_inner))
            elif child in implied and not member.is_dir:
                entries.append(self._member_entry(outer, member._replace(is_dir=True)))
            else:
                entries.append(self._member_entry(outer, member))
        log.debug("Scanned %s: %d children under %r", outer, len(entries), inner or "/")
        return entries

    def directory_exists(self, path: VfsPath) -> bool:
        if self._is_plain_directory(path):
            return self._container.directory_exists(self._local(path))
        outer, inner = path.archive_parts
        if not os.path.isfile(outer):
            return False
        if not inner:
            return True
        entry = self._find(outer, inner)
        return entry is not None and entry.is_dir

    def create_directory(self, path: VfsPath) -> None:
        if self._is_bare(path):
            self._container.create_directory(self._local(path))
            return
        raise self._read_only(Capability.MKDIR, path)

    def delete_directory(self, path: VfsPath, *, recursive: bool = False) -> None:
        if self._is_bare(path):
            self._container.delete_directory(self._local(path), recursive=recursive)
            return
        raise self._read_only(Capability.DELETE, path)

    # endregion

    # region: file operations
    def file_exists(self, path: VfsPath) -> bool:
        if self._is_bare(path):
            return self._container.file_exists(self._local(path))
        outer, inner = path.archive_parts
        if not inner or not os.path.isfile(outer):
            return False
        entry = self._find(outer, inner)
        return entry is not None and not entry.is_dir

    def open_read(self, path: VfsPath) -> BinaryIO:
        if self._is_bare(path):
            return self._container.open_read(self._local(path))
        outer, inner = path.archive_parts
        self._check_archive(outer, path)
        if not inner:
            raise NotFound(f"Not a file: {path}", path=str(path), backend=self.name)
        return io.BytesIO(self._extract(outer, inner))

    def open_write(self, path: VfsPath) -> BinaryIO:
        if self._is_bare(path):
            return self._container.open_write(self._local(path))
        raise self._read_only(Capability.WRITE, path)

    def open_append(self, path: VfsPath) -> BinaryIO:
        if self._is_bare(path):
            return self._container.open_append(self._local(path))
        raise self._read_only(Capability.APPEND, path)

    def delete_file(self, path: VfsPath) -> None:
        if self._is_bare(path):
            self._container.delete_file(self._local(path))
            return
        raise self._read_only(Capability.DELETE, path)

    def copy_file(self, source: VfsPath, destination: VfsPath) -> None:
        if not self._is_bare(destination):
            raise self._read_only(Capability.WRITE, destination)
        if self._is_bare(source):
            self._container.copy_file(self._local(source), self._local(destination))
            return
        # Extracting a member to a file whose name also looks like an archive.
        with self.open_read(source) as src, self._container.open_write(self._local(destination)) as dst:
            shutil.copyfileobj(src, dst, _COPY_CHUNK)

    def move_file(self, source: VfsPath, destination: VfsPath) -> None:
        if self._is_bare(source) and self._is_bare(destination):
            self._container.move_file(self._local(source), self._local(destination))
            return
        raise self._read_only(Capability.MOVE, source)

    def create_symlink(self, target: VfsPath, link: VfsPath) -> None:
        if self._is_bare(link):
            self._container.create_symlink(self._local(target), self._local(link))
            return
        raise self._read_only(Capability.SYMLINK, link)

    # endregion

    # region: metadata
    def stat(self, path: VfsPath) -> DirEntry:
        if self._is_bare(path):
            return self._container.stat(self._local(path))
        outer, inner = path.archive_parts
        self._check_archive(outer, path)
        if not inner:
            return self._root_entry(outer)
        entry = self._find(outer, inner)
        if entry is None:
            raise NotFound(f"Archive entry not found: {path}", path=str(path), backend=self.name)
        return entry

    def set_permissions(self, path: VfsPath, mode: int) -> None:
        if self._is_bare(path):
            self._container.set_permissions(self._local(path), mode)
            return
        raise self._read_only(Capability.CHMOD, path)

    def set_owner(self, path: VfsPath, uid: int, gid: int) -> None:
        if self._is_bare(path):
            self._container.set_owner(self._local(path), uid, gid)
            return
        raise self._read_only(Capability.CHOWN, path)

    def set_modification_time(self, path: VfsPath, when: datetime) -> None:
        if self._is_bare(path):
            self._container.set_modification_time(self._local(path), when)
            return
        raise self._read_only(Capability.UTIME, path)

    # endregion

    # region: path helpers
    def get_parent(self, path: VfsPath) -> VfsPath:
        outer, inner = path.archive_parts
        if not inner:
            return VfsPath.from_local(os.path.dirname(outer.rstrip("/")) or "/")
        head, _, _ = inner.rpartition("/")
        return self._child(outer, head)

    def combine(self, directory: VfsPath, name: str) -> VfsPath:
        outer, inner = directory.archive_parts
        return self._child(outer, f"{inner}/{name}" if inner else name)

    def is_absolute(self, path: VfsPath) -> bool:
        return os.path.isabs(path.archive_parts[0])

    # endregion
