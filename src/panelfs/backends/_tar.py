"""TAR archive provider (plain, gzip, bzip2 and xz)."""

from __future__ import annotations

import logging
import lzma
import posixpath
import tarfile
import zlib
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from panelfs._errors import NotFound
from panelfs.backends._archive import ArchiveMember, ArchiveProvider, normalize_member_name

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

_MAX_LINK_DEPTH = 8


def _member(info: tarfile.TarInfo, name: str) -> ArchiveMember:
    return ArchiveMember(
        name=name,
        is_dir=info.isdir(),
        size=info.size if info.isfile() else 0,
        modified_at=datetime.fromtimestamp(info.mtime, tz=timezone.utc),
        mode=info.mode & 0o7777,
        uid=info.uid,
        gid=info.gid,
        owner_name=info.uname or None,
        group_name=info.gname or None,
        is_symlink=info.issym(),
        symlink_target=info.linkname if info.issym() or info.islnk() else None,
    )


def _link_target(inner: str, info: tarfile.TarInfo) -> str:
    # Hard link names are archive-relative; symlinks resolve against the member directory.
    if info.islnk():
        return normalize_member_name(info.linkname)
    joined = posixpath.normpath(posixpath.join(posixpath.dirname(inner), info.linkname))
    return normalize_member_name(joined)


class TarProvider(ArchiveProvider):
    """Read-only view of TAR archives, with transparent decompression.

    Archives are read in stream mode (``r|*``), so each call is a single
    forward pass over the file.
    """

    scheme = "tar"
    suffixes = (".tar", ".tgz", ".tar.gz", ".tbz", ".tbz2", ".tar.bz2", ".txz", ".tar.xz")
    _format_errors = (tarfile.TarError, EOFError, zlib.error, lzma.LZMAError)

    def _scan(self, archive_file: str) -> Iterator[ArchiveMember]:
        with self._errors(archive_file), tarfile.open(archive_file, "r|*") as tar:
            for info in tar:
                name = normalize_member_name(info.name)
                if name:
                    yield _member(info, name)

    def _extract(self, archive_file: str, inner: str) -> bytes:
        seen = {inner}
        while True:
            data = self._read_member(archive_file, inner)
            if isinstance(data, bytes):
                return data
            if data in seen or len(seen) > _MAX_LINK_DEPTH:
                raise NotFound(f"Too many levels of links: {inner}", path=archive_file, backend=self.name)
            log.debug("Following link %s -> %s in %s", inner, data, archive_file)
            seen.add(data)
            inner = data

    def _read_member(self, archive_file: str, inner: str) -> bytes | str:
        """Bytes of regular member ``inner``, or the member name a link points at."""
        with self._errors(archive_file), tarfile.open(archive_file, "r|*") as tar:
            for info in tar:
                if normalize_member_name(info.name) != inner:
                    continue
                if info.issym() or info.islnk():
                    return _link_target(inner, info)
                if not info.isfile():
                    raise NotFound(f"Not a regular file: {inner}", path=archive_file, backend=self.name)
                stream = tar.extractfile(info)
                if stream is None:
                    raise NotFound(f"Cannot extract: {inner}", path=archive_file, backend=self.name)
                return stream.read()
        raise NotFound(f"Archive entry not found: {inner}", path=archive_file, backend=self.name)
