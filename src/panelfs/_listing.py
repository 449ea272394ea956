"""DirectoryListing: one panel's sorted, filtered snapshot of a directory."""

from __future__ import annotations

import dataclasses
import enum
import fnmatch
import logging
import re
import sys
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from datetime import datetime

    from panelfs._models import DirEntry
    from panelfs._path import VfsPath
    from panelfs._registry import Registry

log = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")
_CASE_SENSITIVE_DEFAULT = sys.platform.startswith("linux")


class SortField(enum.Enum):
    NAME = "name"
    EXTENSION = "extension"
    SIZE = "size"
    MODIFIED = "modified"
    ACCESSED = "accessed"
    CREATED = "created"
    PERMISSIONS = "permissions"
    OWNER = "owner"
    GROUP = "group"
    INODE = "inode"
    UNSORTED = "unsorted"


@dataclasses.dataclass
class SortOptions:
    """How a listing is ordered.

    :param field: Primary sort key.
    :param descending: Reverse the primary key (directories stay first).
    :param directories_first: Group directories before files.
    :param case_sensitive: Compare names and extensions case-sensitively.
    :param version_sort: Compare digit runs numerically (``file2 < file10``).
    """

    field: SortField = SortField.NAME
    descending: bool = False
    directories_first: bool = True
    case_sensitive: bool = _CASE_SENSITIVE_DEFAULT
    version_sort: bool = False


@dataclasses.dataclass
class FilterOptions:
    """Which entries a listing shows.

    :param pattern: Shell glob the name must match (``*`` and ``?``).
    :param show_hidden: Show dot-files.
    :param show_backups: Show names ending in ``~``.
    :param case_sensitive: Match ``pattern`` case-sensitively.
    """

    pattern: Optional[str] = None
    show_hidden: bool = False
    show_backups: bool = True
    case_sensitive: bool = _CASE_SENSITIVE_DEFAULT

    @property
    def is_default(self) -> bool:
        return self.pattern is None and not self.show_hidden and self.show_backups

    def matches(self, name: str) -> bool:
        if name == "..":
            return True
        if not self.show_hidden and name.startswith("."):
            return False
        if not self.show_backups and name.endswith("~"):
            return False
        if self.pattern is None:
            return True
        if self.case_sensitive:
            return fnmatch.fnmatchcase(name, self.pattern)
        return fnmatch.fnmatchcase(name.casefold(), self.pattern.casefold())


def version_key(name: str, *, case_sensitive: bool = True) -> tuple[Any, ...]:
    """Sort key comparing digit runs as integers: ``file2`` sorts before ``file10``."""
    parts = _DIGITS.split(name if case_sensitive else name.casefold())
    return tuple(int(part) if index % 2 else part for index, part in enumerate(parts))


def _time_key(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else float("-inf")


class DirectoryListing:
    """Loads a directory through a :class:`Registry` and keeps a sorted view.

    Listing errors propagate from :meth:`load` and :meth:`reload`; the
    previous snapshot and path are kept so the panel can keep showing them.

    :param registry: Provider registry used for listing.
    :param path: Initial path (not loaded until :meth:`load` or :meth:`reload`).
    """

    def __init__(self, registry: Registry, path: Optional[VfsPath] = None) -> None:
        self._registry = registry
        self._current_path = path
        self._raw: list[DirEntry] = []
        self._entries: list[DirEntry] = []
        self.sort = SortOptions()
        self.filter = FilterOptions()

    @property
    def current_path(self) -> Optional[VfsPath]:
        return self._current_path

    @property
    def entries(self) -> list[DirEntry]:
        return list(self._entries)

    # region: loading
    def load(self, path: VfsPath) -> None:
        """List ``path`` and make it the current directory."""
        raw = self._registry.list_directory(path)
        self._current_path = path
        self._raw = raw
        self.refresh_view()
        log.debug("Loaded %s: %d entries, %d shown", path, len(raw), len(self._entries))

    def reload(self) -> None:
        """List the current directory again."""
        if self._current_path is None:
            raise ValueError("No directory loaded")
        self.load(self._current_path)

    def refresh_view(self) -> None:
        """Re-apply filter and sort options to the last snapshot."""
        visible = [e for e in self._raw if self.filter.matches(e.name)]
        self._entries = self._sorted(visible)

    def change_sort_field(self, field: SortField) -> None:
        """Sort by ``field``; selecting the current field toggles direction."""
        if self.sort.field is field:
            self.sort.descending = not self.sort.descending
        else:
            self.sort.field = field
            self.sort.descending = False
        self.refresh_view()

    # endregion

    # region: sorting
    def _name_key(self, name: str) -> Any:
        if self.sort.version_sort:
            return version_key(name, case_sensitive=self.sort.case_sensitive)
        return name if self.sort.case_sensitive else name.casefold()

    def _field_key(self) -> Callable[[DirEntry], Any] | None:
        field = self.sort.field
        fold: Callable[[str], str] = str if self.sort.case_sensitive else str.casefold
        if field is SortField.UNSORTED:
            return None
        if field is SortField.EXTENSION:
            return lambda e: (fold(e.suffix), self._name_key(e.name))
        if field is SortField.SIZE:
            return lambda e: e.size
        if field is SortField.MODIFIED:
            return lambda e: _time_key(e.modified_at)
        if field is SortField.ACCESSED:
            return lambda e: _time_key(e.accessed_at)
        if field is SortField.CREATED:
            return lambda e: _time_key(e.created_at)
        if field is SortField.PERMISSIONS:
            return lambda e: e.permissions
        if field is SortField.OWNER:
            return lambda e: fold(e.owner_name or str(e.uid))
        if field is SortField.GROUP:
            return lambda e: fold(e.group_name or str(e.gid))
        if field is SortField.INODE:
            return lambda e: e.inode
        return lambda e: self._name_key(e.name)

    def _sorted(self, entries: list[DirEntry]) -> list[DirEntry]:
        parents = [e for e in entries if e.is_parent_dir]
        rest = [e for e in entries if not e.is_parent_dir]
        key = self._field_key()
        if key is not None:
            rest.sort(key=key, reverse=self.sort.descending)
        if self.sort.directories_first:
            # Stable, so the field order survives within each group.
            rest.sort(key=lambda e: not e.is_dir)
        return parents[:1] + rest

    # endregion

    # region: totals
    @property
    def total_files(self) -> int:
        return sum(1 for e in self._entries if not e.is_dir and not e.is_parent_dir)

    @property
    def total_directories(self) -> int:
        return sum(1 for e in self._entries if e.is_dir and not e.is_parent_dir)

    @property
    def total_size(self) -> int:
        """Sum of the sizes of the shown files."""
        return sum(e.size for e in self._entries if not e.is_dir and not e.is_parent_dir)

    # endregion
