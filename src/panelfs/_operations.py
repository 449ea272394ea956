"""FileOperations: copy, move and delete batches across providers."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from panelfs._capabilities import Capability
from panelfs._errors import InvalidPath, OperationCancelled, UnsupportedOperation, VfsError
from panelfs._models import OperationProgress, OperationResult, OverwriteAction
from panelfs._path import VfsPath
from panelfs._registry import CHUNK_SIZE

if TYPE_CHECKING:
    from collections.abc import Sequence

    from panelfs._models import DirEntry
    from panelfs._registry import Registry
    from panelfs._types import ConflictCallback, PathArg, ProgressCallback

log = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation signal shared between a caller and a running batch.

    Thread-safe: :meth:`cancel` may be called from the event loop while the
    batch runs on a worker thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """:raises OperationCancelled: If :meth:`cancel` has been called."""
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")


class _Batch:
    """Per-call state: progress, cancellation and sticky conflict answers."""

    def __init__(
        self,
        token: CancelToken,
        on_progress: Optional[ProgressCallback],
        on_conflict: Optional[ConflictCallback] = None,
    ) -> None:
        self.token = token
        self.progress = OperationProgress()
        self.on_progress = on_progress
        self.on_conflict = on_conflict
        self.overwrite_all = False
        self.skip_all = False

    def check(self) -> None:
        self.token.raise_if_cancelled()

    def report(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.progress)


def _as_path(value: PathArg) -> VfsPath:
    return value if isinstance(value, VfsPath) else VfsPath.parse(value)


def _is_within(path: str, ancestor: str) -> bool:
    """True if ``path`` equals ``ancestor`` or lies below it."""
    return path == ancestor or path.startswith(ancestor.rstrip("/") + "/")


class FileOperations:
    """Runs bulk file operations against a :class:`Registry`.

    Each ``async`` operation runs its whole batch on one worker thread via
    :func:`asyncio.to_thread`; progress callbacks are invoked from that
    thread. Cancellation is observed before every source, before every
    directory child and after every 64 KiB chunk, and yields
    :attr:`OperationResult.CANCELLED`. Partially written files are left in
    place. Any other error propagates and aborts the rest of the batch.

    :param registry: Provider registry used for every path.
    """

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    # region: public operations
    async def copy(
        self,
        sources: Sequence[PathArg],
        destination: PathArg,
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
        on_conflict: Optional[ConflictCallback] = None,
        preserve_attributes: bool = False,
    ) -> OperationResult:
        """Copy files and directory trees into ``destination``.

        :param sources: Files or directories to copy.
        :param destination: Target directory; each source keeps its name.
        :param on_progress: Called with the live progress record.
        :param cancel: Token checked between sources, children and chunks.
        :param on_conflict: Asked ``(name, destination_path)`` when a target
            file exists. Without it, existing files are overwritten.
        :param preserve_attributes: Copy modification time and permission bits
            where the destination provider supports them.
        """
        token = cancel or CancelToken()
        batch = _Batch(token, on_progress, on_conflict)
        paths = [_as_path(s) for s in sources]
        return await self._run("copy", token, self._copy_batch, paths, _as_path(destination), batch, preserve_attributes)

    async def move(
        self,
        sources: Sequence[PathArg],
        destination: PathArg,
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> OperationResult:
        """Move files and directory trees into ``destination``.

        Within one provider this is a native rename. Otherwise, or when the
        rename fails, the source is copied with progress and deleted after
        the copy succeeded. A failing delete propagates and leaves both copies.
        """
        token = cancel or CancelToken()
        batch = _Batch(token, on_progress)
        paths = [_as_path(s) for s in sources]
        return await self._run("move", token, self._move_batch, paths, _as_path(destination), batch)

    async def delete(
        self,
        targets: Sequence[PathArg],
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> OperationResult:
        """Delete files, and directories recursively through their provider."""
        token = cancel or CancelToken()
        batch = _Batch(token, on_progress)
        paths = [_as_path(t) for t in targets]
        return await self._run("delete", token, self._delete_batch, paths, batch)

    def create_directory(self, parent: PathArg, name: str) -> VfsPath:
        """Create ``name`` inside ``parent`` and return its path."""
        parent_path = _as_path(parent)
        path = self._combine(parent_path, self._check_name(name, parent_path))
        self._registry.create_directory(path)
        return path

    def rename(self, path: PathArg, new_name: str) -> VfsPath:
        """Rename an entry in place and return its new path."""
        source = _as_path(path)
        parent = self._registry.resolve(source).get_parent(source)
        target = self._combine(parent, self._check_name(new_name, source))
        self._registry.move_file(source, target)
        return target

    # endregion

    # region: helpers
    async def _run(self, name: str, token: CancelToken, func: Callable[..., None], *args: object) -> OperationResult:
        try:
            await asyncio.to_thread(func, *args)
        except OperationCancelled:
            log.info("%s cancelled", name.capitalize())
            return OperationResult.CANCELLED
        except asyncio.CancelledError:
            # Stop the worker thread at its next check.
            token.cancel()
            raise
        return OperationResult.SUCCESS

    @staticmethod
    def _check_name(name: str, where: VfsPath) -> str:
        if not name or name in (".", "..") or "/" in name:
            raise InvalidPath(f"Invalid entry name: {name!r}", path=str(where))
        return name

    def _combine(self, directory: VfsPath, name: str) -> VfsPath:
        return self._registry.resolve(directory).combine(directory, name)

    def _check_targets(self, verb: str, sources: list[VfsPath], destination: VfsPath) -> None:
        """Reject a batch whose destination is a source or lies inside one.

        :raises InvalidPath: Before anything is written.
        """
        dest_provider = self._registry.resolve(destination)
        for src in sources:
            if self._registry.resolve(src) is not dest_provider or src.with_path("") != destination.with_path(""):
                continue
            if self._combine(destination, src.name) == src:
                raise InvalidPath(f"Cannot {verb} {src} onto itself", path=str(src))
            if _is_within(destination.path, src.path):
                raise InvalidPath(f"Cannot {verb} {src} into itself: {destination}", path=str(destination))

    def _size_or_zero(self, path: VfsPath) -> int:
        try:
            return self._registry.stat(path).size
        except (VfsError, OSError) as exc:
            log.debug("Cannot size %s for progress total: %s", path, exc)
            return 0

    def _start_source(self, batch: _Batch, path: VfsPath) -> DirEntry:
        batch.check()
        entry = self._registry.stat(path)
        batch.progress.current_file = entry.name
        batch.report()
        return entry

    def _should_write(self, batch: _Batch, name: str, dest: VfsPath) -> bool:
        if batch.overwrite_all or batch.on_conflict is None:
            return True
        if not self._registry.exists(dest):
            return True
        if batch.skip_all:
            return False
        action = batch.on_conflict(name, dest)
        if action is OverwriteAction.OVERWRITE_ALL:
            batch.overwrite_all = True
        elif action is OverwriteAction.SKIP_ALL:
            batch.skip_all = True
        return action in (OverwriteAction.OVERWRITE, OverwriteAction.OVERWRITE_ALL)

    def _preserve(self, source: VfsPath, dest: VfsPath) -> None:
        """Best-effort copy of mtime and permission bits onto ``dest``."""
        entry = self._registry.stat(source)
        provider = self._registry.resolve(dest)
        caps = provider.capabilities
        try:
            if entry.modified_at is not None and caps.supports(Capability.UTIME):
                provider.set_modification_time(dest, entry.modified_at)
            if entry.permissions and caps.supports(Capability.CHMOD):
                provider.set_permissions(dest, entry.permissions)
        except UnsupportedOperation as exc:
            log.debug("Attributes not preserved on %s: %s", dest, exc)

    # endregion

    # region: copy
    def _copy_batch(self, sources: list[VfsPath], destination: VfsPath, batch: _Batch, preserve: bool) -> None:
        self._check_targets("copy", sources, destination)
        progress = batch.progress
        progress.total_files = len(sources)
        progress.total_bytes = sum(self._size_or_zero(s) for s in sources)
        for src in sources:
            entry = self._start_source(batch, src)
            dest = self._combine(destination, entry.name)
            if entry.is_dir:
                self._copy_tree(src, dest, batch, preserve)
            else:
                self._copy_file(src, dest, entry.name, batch, preserve)

    def _copy_tree(self, src: VfsPath, dest: VfsPath, batch: _Batch, preserve: bool) -> None:
        if not self._registry.directory_exists(dest):
            self._registry.create_directory(dest)
        for child in self._registry.list_directory(src):
            batch.check()
            if child.is_parent_dir or child.is_current_dir:
                continue
            child_dest = self._combine(dest, child.name)
            if child.is_dir:
                self._copy_tree(child.path, child_dest, batch, preserve)
            else:
                self._copy_file(child.path, child_dest, child.name, batch, preserve)
        if preserve:
            self._preserve(src, dest)

    def _copy_file(self, src: VfsPath, dest: VfsPath, name: str, batch: _Batch, preserve: bool) -> None:
        progress = batch.progress
        progress.current_file = name
        if not self._should_write(batch, name, dest):
            log.debug("Skipping existing %s", dest)
            progress.files_done += 1
            batch.report()
            return
        with self._registry.open_read(src) as reader, self._registry.open_write(dest) as writer:
            while True:
                chunk = reader.read(CHUNK_SIZE)
                if not chunk:
                    break
                writer.write(chunk)
                progress.bytes_done += len(chunk)
                batch.report()
                batch.check()
        progress.files_done += 1
        batch.report()
        if preserve:
            self._preserve(src, dest)

    # endregion

    # region: move and delete
    def _move_batch(self, sources: list[VfsPath], destination: VfsPath, batch: _Batch) -> None:
        self._check_targets("move", sources, destination)
        progress = batch.progress
        progress.total_files = len(sources)
        progress.total_bytes = sum(self._size_or_zero(s) for s in sources)
        for src in sources:
            entry = self._start_source(batch, src)
            dest = self._combine(destination, entry.name)
            src_provider = self._registry.resolve(src)
            if src_provider is self._registry.resolve(dest):
                try:
                    src_provider.move_file(src, dest)
                except (VfsError, OSError) as exc:
                    log.warning("Native move of %s failed (%s); falling back to copy and delete", src, exc)
                else:
                    progress.bytes_done += entry.size
                    progress.files_done += 1
                    batch.report()
                    continue
            if entry.is_dir and not entry.is_symlink:
                self._copy_tree(src, dest, batch, preserve=True)
                self._registry.delete_directory(src, recursive=True)
            else:
                self._copy_file(src, dest, entry.name, batch, preserve=True)
                self._registry.delete_file(src)

    def _delete_batch(self, targets: list[VfsPath], batch: _Batch) -> None:
        progress = batch.progress
        progress.total_files = len(targets)
        for target in targets:
            entry = self._start_source(batch, target)
            if entry.is_dir and not entry.is_symlink:
                self._registry.delete_directory(target, recursive=True)
            else:
                self._registry.delete_file(target)
            progress.files_done += 1
            batch.report()

    # endregion
