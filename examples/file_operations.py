"""File operations: copy, move and delete with progress and cancellation.

Demonstrates:
- Copying a tree between two directories with a progress callback
- Answering overwrite conflicts once for the whole batch
- Cancelling a running copy through a CancelToken
- Creating and renaming entries by name
"""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

from panelfs import (
    CancelToken,
    FileOperations,
    OperationProgress,
    OperationResult,
    OverwriteAction,
    Registry,
    VfsPath,
)


def show(progress: OperationProgress) -> None:
    print(
        f"\r{progress.files_done}/{progress.total_files} files "
        f"{progress.percent:5.1f}%  {progress.current_file:<40}",
        end="",
    )


def keep_existing(name: str, destination: VfsPath) -> OverwriteAction:
    print(f"\n{name} already exists at {destination}; skipping it and any later conflicts")
    return OverwriteAction.SKIP_ALL


async def main(tmp: str) -> None:
    left = Path(tmp) / "left"
    right = Path(tmp) / "right"
    (left / "project" / "src").mkdir(parents=True)
    (left / "project" / "src" / "main.py").write_text("print('hi')\n")
    (left / "project" / "data.bin").write_bytes(b"\0" * 500_000)
    right.mkdir()

    with Registry.default() as registry:
        ops = FileOperations(registry)
        source = VfsPath.from_local(str(left / "project"))
        target = VfsPath.from_local(str(right))

        result = await ops.copy([source], target, on_progress=show, preserve_attributes=True)
        print(f"\nFirst copy: {result.value}")

        result = await ops.copy([source], target, on_conflict=keep_existing)
        print(f"Second copy: {result.value}")

        token = CancelToken()
        token.cancel()
        result = await ops.copy([source], VfsPath.from_local(str(Path(tmp) / "elsewhere")), cancel=token)
        assert result is OperationResult.CANCELLED
        print("Pre-cancelled copy did nothing")

        backup = ops.create_directory(target, "backup")
        await ops.move([target.combine("project")], backup, on_progress=show)
        renamed = ops.rename(backup.combine("project"), "project-old")
        print(f"\nMoved and renamed to {renamed}")

        await ops.delete([source])
        print("Remaining in left:", [e.name for e in registry.list_directory(VfsPath.from_local(str(left)))])


if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        asyncio.run(main(tmp))
