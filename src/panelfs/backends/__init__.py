"""Provider implementations."""

from panelfs.backends._archive import ArchiveProvider
from panelfs.backends._ftp import FTPProvider, parse_list_line
from panelfs.backends._local import LocalProvider
from panelfs.backends._sftp import HostKeyPolicy, SFTPProvider
from panelfs.backends._tar import TarProvider
from panelfs.backends._zip import ZipProvider

__all__ = [
    "ArchiveProvider",
    "FTPProvider",
    "HostKeyPolicy",
    "LocalProvider",
    "SFTPProvider",
    "TarProvider",
    "ZipProvider",
    "parse_list_line",
]
