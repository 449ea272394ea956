"""Quickstart: list a directory the way a file panel shows it.

Demonstrates:
- Building the default Registry (archives, FTP, SFTP, local)
- Loading a DirectoryListing and changing sort and filter options
- Walking into a zip archive with the same calls
"""

from __future__ import annotations

import tempfile
import zipfile
from pathlib import Path

from panelfs import DirectoryListing, Registry, SortField, VfsPath, format_mode

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "notes.txt").write_text("Hello, world!")
        (root / "file10.log").write_text("ten")
        (root / "file2.log").write_text("two")
        (root / ".secret").write_text("hidden")
        (root / "photos").mkdir()
        with zipfile.ZipFile(root / "bundle.zip", "w") as zf:
            zf.writestr("docs/readme.md", "# readme")

        with Registry.default() as registry:
            listing = DirectoryListing(registry)
            listing.load(VfsPath.from_local(tmp))

            for entry in listing.entries:
                mode = format_mode(entry.permissions, is_dir=entry.is_dir, is_symlink=entry.is_symlink)
                print(f"{mode}  {entry.size:>6}  {entry.name}")

            # Natural number ordering: file2.log before file10.log
            listing.sort.version_sort = True
            listing.refresh_view()
            print("Version sort:", [e.name for e in listing.entries])

            listing.change_sort_field(SortField.SIZE)
            listing.change_sort_field(SortField.SIZE)
            print("By size, descending:", [e.name for e in listing.entries])

            listing.filter.show_hidden = True
            listing.filter.pattern = "*.log"
            listing.refresh_view()
            print("Filtered:", [e.name for e in listing.entries])

            archive = VfsPath.archive("zip", str(root / "bundle.zip"), "docs")
            listing.load(archive)
            print(f"Inside {listing.current_path}:", [e.name for e in listing.entries])
            print(f"{listing.total_files} file(s), {listing.total_size} bytes")
