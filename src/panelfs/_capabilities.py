"""Capability enum and CapabilitySet."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from panelfs._errors import UnsupportedOperation

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class Capability(enum.Enum):
    """Operations a provider may support."""

    READ = "read"
    WRITE = "write"
    APPEND = "append"
    DELETE = "delete"
    LIST = "list"
    MKDIR = "mkdir"
    MOVE = "move"
    COPY = "copy"
    SYMLINK = "symlink"
    CHMOD = "chmod"
    CHOWN = "chown"
    UTIME = "utime"


class CapabilitySet:
    """Immutable set of capabilities declared by a provider.

    :param capabilities: The supported capabilities.
    """

    __slots__ = ("_caps",)
    _caps: frozenset[Capability]

    def __init__(self, capabilities: Iterable[Capability]) -> None:
        object.__setattr__(self, "_caps", frozenset(capabilities))

    def supports(self, cap: Capability) -> bool:
        """Check whether a capability is supported."""
        return cap in self._caps

    def require(self, cap: Capability, *, backend: str = "", path: str | None = None) -> None:
        """Raise if a capability is not supported.

        :raises UnsupportedOperation: If the capability is missing.
        """
        if cap not in self._caps:
            raise UnsupportedOperation(
                f"Operation '{cap.value}' is not supported",
                capability=cap.value,
                backend=backend or None,
                path=path,
            )

    def __contains__(self, cap: object) -> bool:
        return cap in self._caps

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._caps)

    def __len__(self) -> int:
        return len(self._caps)

    def __repr__(self) -> str:
        names = sorted(c.name for c in self._caps)
        return f"CapabilitySet({{{', '.join(names)}}})"

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("CapabilitySet is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("CapabilitySet is immutable")


ALL_CAPABILITIES = CapabilitySet(Capability)
READ_ONLY_CAPABILITIES = CapabilitySet({Capability.READ, Capability.LIST})
