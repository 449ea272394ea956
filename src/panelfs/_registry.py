"""Registry: provider dispatch and cross-provider convenience operations."""

from __future__ import annotations

import logging
import shutil
from typing import TYPE_CHECKING, BinaryIO

from panelfs._config import RegistryConfig
from panelfs._errors import InvalidPath, PathResolutionError

if TYPE_CHECKING:
    from types import TracebackType

    from panelfs._models import DirEntry
    from panelfs._path import VfsPath
    from panelfs._provider import Provider

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Global provider factory registry: maps type strings to provider classes.
_PROVIDER_FACTORIES: dict[str, type[Provider]] = {}


def register_provider_type(type_name: str, cls: type[Provider]) -> None:
    """Register a provider class for a given config type string.

    :param type_name: The type identifier (e.g. ``"local"``).
    :param cls: The provider class to instantiate.
    """
    _PROVIDER_FACTORIES[type_name] = cls


def _register_builtin_providers() -> None:
    """Register the built-in providers."""
    from panelfs.backends._ftp import FTPProvider
    from panelfs.backends._local import LocalProvider
    from panelfs.backends._sftp import SFTPProvider
    from panelfs.backends._tar import TarProvider
    from panelfs.backends._zip import ZipProvider

    for type_name, cls in (
        ("local", LocalProvider),
        ("tar", TarProvider),
        ("zip", ZipProvider),
        ("ftp", FTPProvider),
        ("sftp", SFTPProvider),
    ):
        _PROVIDER_FACTORIES.setdefault(type_name, cls)


class Registry:
    """Ordered list of providers; dispatches each path to the first that claims it.

    Providers are registered once at startup and are read-only afterwards.
    Errors raised by providers propagate unchanged, except from the
    best-effort :meth:`exists` probe.
    """

    def __init__(self) -> None:
        self._providers: list[Provider] = []
        self._closed = False

    @classmethod
    def from_config(cls, config: RegistryConfig) -> Registry:
        """Instantiate and register providers in config order.

        :raises ValueError: If the config is invalid or names an unknown type.
        """
        _register_builtin_providers()
        config.validate()
        registry = cls()
        for cfg in config.providers:
            if cfg.type not in _PROVIDER_FACTORIES:
                raise ValueError(
                    f"Unknown provider type '{cfg.type}'. Registered types: {sorted(_PROVIDER_FACTORIES.keys())}"
                )
            factory = _PROVIDER_FACTORIES[cfg.type]
            try:
                provider = factory(**cfg.options)
            except TypeError as exc:
                raise ValueError(
                    f"Invalid options for provider type {cfg.type!r}: {exc}. "
                    f"Provided options: {sorted(cfg.options.keys())}"
                ) from exc
            registry.register(provider)
        return registry

    @classmethod
    def default(cls) -> Registry:
        """Registry with every built-in provider in the standard order."""
        return cls.from_config(RegistryConfig.default())

    def __repr__(self) -> str:
        names = [p.name for p in self._providers]
        return f"Registry(providers={names!r})"

    # region: registration and dispatch
    def register(self, provider: Provider) -> None:
        """Initialize ``provider`` and append it to the dispatch order."""
        provider.initialize()
        self._providers.append(provider)
        log.debug("Registered provider %s for schemes %s", provider.name, list(provider.schemes))

    @property
    def providers(self) -> tuple[Provider, ...]:
        return tuple(self._providers)

    def resolve(self, path: VfsPath) -> Provider:
        """Return the first provider whose ``can_handle`` accepts ``path``.

        :raises PathResolutionError: If no provider claims the path.
        """
        for provider in self._providers:
            if provider.can_handle(path):
                return provider
        raise PathResolutionError(f"No provider found for path: {path}", path=str(path))

    # endregion

    # region: delegation
    def list_directory(self, path: VfsPath) -> list[DirEntry]:
        return self.resolve(path).list_directory(path)

    def stat(self, path: VfsPath) -> DirEntry:
        return self.resolve(path).stat(path)

    def exists(self, path: VfsPath) -> bool:
        """Best-effort existence probe; any failure counts as absent."""
        try:
            provider = self.resolve(path)
            return provider.file_exists(path) or provider.directory_exists(path)
        except Exception as exc:  # noqa: BLE001
            log.debug("exists(%s) treated as False: %s", path, exc)
            return False

    def file_exists(self, path: VfsPath) -> bool:
        return self.resolve(path).file_exists(path)

    def directory_exists(self, path: VfsPath) -> bool:
        return self.resolve(path).directory_exists(path)

    def open_read(self, path: VfsPath) -> BinaryIO:
        return self.resolve(path).open_read(path)

    def open_write(self, path: VfsPath) -> BinaryIO:
        return self.resolve(path).open_write(path)

    def open_append(self, path: VfsPath) -> BinaryIO:
        return self.resolve(path).open_append(path)

    def delete_file(self, path: VfsPath) -> None:
        self.resolve(path).delete_file(path)

    def create_directory(self, path: VfsPath) -> None:
        self.resolve(path).create_directory(path)

    def delete_directory(self, path: VfsPath, *, recursive: bool = False) -> None:
        self.resolve(path).delete_directory(path, recursive=recursive)

    # endregion

    # region: copy and move
    def copy_file(self, source: VfsPath, destination: VfsPath) -> None:
        """Copy one file, natively within a provider or streamed across providers."""
        src_provider = self.resolve(source)
        dst_provider = self.resolve(destination)
        if src_provider is dst_provider and source == destination:
            raise InvalidPath(f"Cannot copy {source} onto itself", path=str(source), backend=src_provider.name)
        if src_provider is dst_provider:
            src_provider.copy_file(source, destination)
            return
        with src_provider.open_read(source) as src, dst_provider.open_write(destination) as dst:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)

    def move_file(self, source: VfsPath, destination: VfsPath) -> None:
        """Move one file.

        Across providers this is copy-then-delete and is not atomic: if the
        delete fails, both copies remain and the error propagates.
        """
        src_provider = self.resolve(source)
        dst_provider = self.resolve(destination)
        if src_provider is dst_provider:
            src_provider.move_file(source, destination)
            return
        self.copy_file(source, destination)
        src_provider.delete_file(source)

    # endregion

    # region: lifecycle
    def close(self) -> None:
        """Dispose every registered provider exactly once."""
        if self._closed:
            return
        self._closed = True
        for provider in self._providers:
            provider.close()

    def __enter__(self) -> Registry:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # endregion
