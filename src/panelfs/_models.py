"""Directory entry, progress and result models."""

from __future__ import annotations

import dataclasses
import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from panelfs._path import VfsPath


@dataclasses.dataclass(frozen=True, eq=False)
class DirEntry:
    """Immutable snapshot of one directory entry.

    Produced fresh by every listing or stat call. Fields a backend cannot
    provide keep their defaults (``None`` timestamps, zero ids and bits).

    :param name: Entry name (final path component, or ``..``).
    :param path: Full path of the entry.
    :param size: Size in bytes (``0`` for directories).
    :param modified_at: Last modification time.
    :param accessed_at: Last access time.
    :param created_at: Creation / metadata change time.
    :param is_dir: Entry is a directory (or resolves to one).
    :param is_symlink: Entry is a symbolic link.
    :param symlink_target: Link target when known.
    :param is_hidden: Dot-file or OS hidden attribute.
    :param is_executable: Any execute bit set on a non-directory.
    :param permissions: POSIX permission bits.
    :param uid: Numeric owner id.
    :param gid: Numeric group id.
    :param owner_name: Resolved owner name.
    :param group_name: Resolved group name.
    :param inode: Inode number (local only).
    :param hard_links: Hard link count (local only).
    """

    name: str
    path: VfsPath
    size: int = 0
    modified_at: datetime | None = None
    accessed_at: datetime | None = None
    created_at: datetime | None = None
    is_dir: bool = False
    is_symlink: bool = False
    symlink_target: str | None = None
    is_hidden: bool = False
    is_executable: bool = False
    permissions: int = 0
    uid: int = 0
    gid: int = 0
    owner_name: str | None = None
    group_name: str | None = None
    inode: int = 0
    hard_links: int = 0

    @property
    def suffix(self) -> str:
        dot = self.name.rfind(".")
        if dot < 0:
            return ""
        return self.name[dot:]

    @property
    def is_parent_dir(self) -> bool:
        return self.name == ".."

    @property
    def is_current_dir(self) -> bool:
        return self.name == "."

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DirEntry):
            return self.name == other.name and self.path == other.path
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.name, self.path))


@dataclasses.dataclass
class OperationProgress:
    """Mutable progress record owned by one running bulk operation."""

    current_file: str = ""
    bytes_done: int = 0
    total_bytes: int = 0
    files_done: int = 0
    total_files: int = 0

    @property
    def percent(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return min(100.0, self.bytes_done / self.total_bytes * 100)


class OperationResult(enum.Enum):
    """Outcome of a bulk operation that did not raise."""

    SUCCESS = "success"
    CANCELLED = "cancelled"


class OverwriteAction(enum.Enum):
    """Answer of a conflict callback when a copy target already exists."""

    OVERWRITE = "overwrite"
    OVERWRITE_ALL = "overwrite_all"
    SKIP = "skip"
    SKIP_ALL = "skip_all"
