"""Error handling: catching panelfs errors from any provider.

Demonstrates:
- NotFound for missing paths
- UnsupportedOperation when writing inside an archive
- InvalidPath for bad names and reserved characters
- Catching the VfsError base class
"""

from __future__ import annotations

import tarfile
import tempfile
from pathlib import Path

from panelfs import (
    FileOperations,
    InvalidPath,
    NotFound,
    Registry,
    UnsupportedOperation,
    VfsError,
    VfsPath,
)

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp, Registry.default() as registry:
        ops = FileOperations(registry)
        here = VfsPath.from_local(tmp)

        # 1. NotFound
        try:
            registry.list_directory(here.combine("does-not-exist"))
        except NotFound as exc:
            print(f"NotFound: {exc}")

        # 2. UnsupportedOperation: archive members are read-only
        archive = Path(tmp) / "logs.tar.gz"
        with tarfile.open(archive, "w:gz") as tf:
            tf.add(__file__, arcname="example.py")
        try:
            registry.open_write(VfsPath.archive("tar", str(archive), "new.txt"))
        except UnsupportedOperation as exc:
            print(f"UnsupportedOperation ({exc.capability}): {exc}")

        # 3. InvalidPath
        for bad in ("", "..", "a/b"):
            try:
                ops.create_directory(here, bad)
            except InvalidPath as exc:
                print(f"InvalidPath for {bad!r}: {exc}")
        try:
            VfsPath.from_local(f"{tmp}/pipe|name")
        except InvalidPath as exc:
            print(f"InvalidPath: {exc}")

        # 4. Catch-all
        try:
            registry.stat(VfsPath.from_local(f"{tmp}/nowhere/file.txt"))
        except VfsError as exc:
            print(f"VfsError ({type(exc).__name__}): {exc!r}")

        print("All error examples completed.")
