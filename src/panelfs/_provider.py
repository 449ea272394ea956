"""Provider abstract base class: the contract every backend implements."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from panelfs._capabilities import CapabilitySet
    from panelfs._models import DirEntry
    from panelfs._path import VfsPath


class Provider(abc.ABC):
    """Abstract base class for all VFS providers.

    A provider is registered once at startup (:meth:`initialize`) and
    disposed once at shutdown (:meth:`close`). Individual calls carry no
    state between them apart from connection caches a network provider may
    keep. Backend-native exceptions must never leak; they must be mapped to
    ``panelfs`` errors.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short identifier for this provider (e.g. ``'local'``, ``'sftp'``)."""

    @property
    @abc.abstractmethod
    def schemes(self) -> Sequence[str]:
        """URI schemes this provider is bound to."""

    @property
    @abc.abstractmethod
    def capabilities(self) -> CapabilitySet:
        """Declared capabilities of this provider."""

    @abc.abstractmethod
    def can_handle(self, path: VfsPath) -> bool:
        """Return ``True`` if this provider claims ``path``."""

    # region: directory operations
    @abc.abstractmethod
    def list_directory(self, path: VfsPath) -> list[DirEntry]:
        """List the direct children of a directory.

        :raises NotFound: If the directory does not exist.
        """

    @abc.abstractmethod
    def directory_exists(self, path: VfsPath) -> bool:
        """Return ``True`` if ``path`` is an existing directory."""

    @abc.abstractmethod
    def create_directory(self, path: VfsPath) -> None:
        """Create a directory (and missing parents where the backend allows)."""

    @abc.abstractmethod
    def delete_directory(self, path: VfsPath, *, recursive: bool = False) -> None:
        """Delete a directory.

        :raises NotFound: If the directory does not exist.
        """

    # endregion

    # region: file operations
    @abc.abstractmethod
    def file_exists(self, path: VfsPath) -> bool:
        """Return ``True`` if ``path`` is an existing non-directory entry."""

    @abc.abstractmethod
    def open_read(self, path: VfsPath) -> BinaryIO:
        """Open a file for reading and return a binary stream.

        :raises NotFound: If the file does not exist.
        """

    @abc.abstractmethod
    def open_write(self, path: VfsPath) -> BinaryIO:
        """Open a file for writing, truncating any existing content."""

    @abc.abstractmethod
    def open_append(self, path: VfsPath) -> BinaryIO:
        """Open a file for appending."""

    @abc.abstractmethod
    def delete_file(self, path: VfsPath) -> None:
        """Delete a file.

        :raises NotFound: If the file does not exist.
        """

    @abc.abstractmethod
    def copy_file(self, source: VfsPath, destination: VfsPath) -> None:
        """Copy a file within this provider, replacing ``destination``."""

    @abc.abstractmethod
    def move_file(self, source: VfsPath, destination: VfsPath) -> None:
        """Move or rename an entry within this provider."""

    @abc.abstractmethod
    def create_symlink(self, target: VfsPath, link: VfsPath) -> None:
        """Create ``link`` pointing at ``target``."""

    # endregion

    # region: metadata
    @abc.abstractmethod
    def stat(self, path: VfsPath) -> DirEntry:
        """Return metadata for a single entry.

        :raises NotFound: If the entry does not exist.
        """

    @abc.abstractmethod
    def set_permissions(self, path: VfsPath, mode: int) -> None:
        """Change POSIX permission bits."""

    @abc.abstractmethod
    def set_owner(self, path: VfsPath, uid: int, gid: int) -> None:
        """Change numeric owner and group."""

    @abc.abstractmethod
    def set_modification_time(self, path: VfsPath, when: datetime) -> None:
        """Change the modification timestamp."""

    # endregion

    # region: path helpers
    def get_parent(self, path: VfsPath) -> VfsPath:
        return path.parent()

    def combine(self, directory: VfsPath, name: str) -> VfsPath:
        return directory.combine(name)

    def is_absolute(self, path: VfsPath) -> bool:
        return path.path.startswith("/")

    # endregion

    # region: lifecycle
    def initialize(self) -> None:  # noqa: B027
        """Prepare the provider at registration time. Default is a no-op."""

    def close(self) -> None:  # noqa: B027
        """Release resources. Default is a no-op."""

    # endregion

    def __repr__(self) -> str:
        return f"{type(self).__name__}(schemes={list(self.schemes)!r})"
