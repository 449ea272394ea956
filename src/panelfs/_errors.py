"""Normalized error hierarchy for panelfs."""

from __future__ import annotations

from typing import Optional


class VfsError(Exception):
    """Base class for all panelfs errors.

    :param message: Human-readable error description.
    :param path: The path involved in the error, if any.
    :param backend: The provider name involved, if any.
    """

    def __init__(self, message: str = "", *, path: Optional[str] = None, backend: Optional[str] = None) -> None:
        self.path = path
        self.backend = backend
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.path is not None:
            parts.append(f"path={self.path!r}")
        if self.backend is not None:
            parts.append(f"backend={self.backend!r}")
        return " | ".join(parts) if len(parts) > 1 else parts[0]

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(super().__str__())]
        if self.path is not None:
            args.append(f"path={self.path!r}")
        if self.backend is not None:
            args.append(f"backend={self.backend!r}")
        return f"{cls}({', '.join(args)})"


class PathResolutionError(VfsError):
    """Raised when no registered provider claims a path."""


class NotFound(VfsError):
    """Raised when a file, directory or archive entry does not exist."""


class AlreadyExists(VfsError):
    """Raised when a target already exists."""


class PermissionDenied(VfsError):
    """Raised when access is denied by the storage backend."""


class InvalidPath(VfsError):
    """Raised for malformed paths (NUL bytes, reserved ``|`` in local paths)."""


class UnsupportedOperation(VfsError):
    """Raised when a provider cannot perform an operation.

    Covers writes against read-only archive providers as well as
    capabilities a backend simply lacks (FTP symlinks, FTP chown).

    :param capability: The name of the missing capability.
    """

    def __init__(
        self,
        message: str = "",
        *,
        path: Optional[str] = None,
        backend: Optional[str] = None,
        capability: str = "",
    ) -> None:
        self.capability = capability
        super().__init__(message, path=path, backend=backend)

    def __str__(self) -> str:
        base = super().__str__()
        if self.capability:
            if base:
                return f"{base} | capability={self.capability!r}"
            return f"capability={self.capability!r}"
        return base

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(self.args[0] if self.args else "")]
        if self.path is not None:
            args.append(f"path={self.path!r}")
        if self.backend is not None:
            args.append(f"backend={self.backend!r}")
        if self.capability:
            args.append(f"capability={self.capability!r}")
        return f"{cls}({', '.join(args)})"


class TransportError(VfsError):
    """Raised when a network backend cannot be reached or the session drops."""


class OperationCancelled(VfsError):
    """Raised inside the operation engine once cancellation is observed."""
