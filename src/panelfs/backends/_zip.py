"""ZIP archive provider."""

from __future__ import annotations

import stat
import zipfile
import zlib
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from panelfs._errors import NotFound
from panelfs.backends._archive import ArchiveMember, ArchiveProvider, normalize_member_name

if TYPE_CHECKING:
    from collections.abc import Iterator


def _modified_at(info: zipfile.ZipInfo) -> Optional[datetime]:
    # ZIP stores naive local time; some writers leave zeroed fields.
    try:
        return datetime(*info.date_time).astimezone()
    except ValueError:
        return None


def _member(info: zipfile.ZipInfo, name: str) -> ArchiveMember:
    unix_mode = info.external_attr >> 16
    is_dir = info.is_dir() or stat.S_ISDIR(unix_mode)
    return ArchiveMember(
        name=name,
        is_dir=is_dir,
        size=0 if is_dir else info.file_size,
        modified_at=_modified_at(info),
        mode=stat.S_IMODE(unix_mode),
        is_symlink=stat.S_ISLNK(unix_mode),
    )


class ZipProvider(ArchiveProvider):
    """Read-only view of ZIP archives."""

    scheme = "zip"
    suffixes = (".zip",)
    _format_errors = (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError)

    def _scan(self, archive_file: str) -> Iterator[ArchiveMember]:
        with self._errors(archive_file), zipfile.ZipFile(archive_file) as zf:
            for info in zf.infolist():
                name = normalize_member_name(info.filename)
                if name:
                    yield _member(info, name)

    def _extract(self, archive_file: str, inner: str) -> bytes:
        with self._errors(archive_file), zipfile.ZipFile(archive_file) as zf:
            for info in zf.infolist():
                if normalize_member_name(info.filename) == inner and not info.is_dir():
                    return zf.read(info)
        raise NotFound(f"Archive entry not found: {inner}", path=archive_file, backend=self.name)
