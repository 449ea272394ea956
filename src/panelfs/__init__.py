"""Virtual filesystem core for a two-panel file manager."""

from panelfs._capabilities import Capability, CapabilitySet
from panelfs._config import ProviderConfig, RegistryConfig
from panelfs._errors import (
    AlreadyExists,
    InvalidPath,
    NotFound,
    OperationCancelled,
    PathResolutionError,
    PermissionDenied,
    TransportError,
    UnsupportedOperation,
    VfsError,
)
from panelfs._listing import DirectoryListing, FilterOptions, SortField, SortOptions
from panelfs._models import DirEntry, OperationProgress, OperationResult, OverwriteAction
from panelfs._operations import CancelToken, FileOperations
from panelfs._path import VfsPath
from panelfs._permissions import format_mode, format_octal, parse_mode_string, parse_octal
from panelfs._provider import Provider
from panelfs._registry import Registry, register_provider_type

__version__ = "0.1.0"

__all__ = [
    # Core
    "Registry",
    "Provider",
    "register_provider_type",
    "FileOperations",
    "CancelToken",
    "DirectoryListing",
    # Path & Models
    "VfsPath",
    "DirEntry",
    "OperationProgress",
    "OperationResult",
    "OverwriteAction",
    "SortField",
    "SortOptions",
    "FilterOptions",
    # Permissions
    "format_mode",
    "format_octal",
    "parse_mode_string",
    "parse_octal",
    # Capabilities
    "Capability",
    "CapabilitySet",
    # Config
    "ProviderConfig",
    "RegistryConfig",
    # Errors
    "VfsError",
    "PathResolutionError",
    "NotFound",
    "AlreadyExists",
    "PermissionDenied",
    "InvalidPath",
    "UnsupportedOperation",
    "TransportError",
    "OperationCancelled",
    # Version
    "__version__",
]
