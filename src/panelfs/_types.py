"""Type aliases used throughout panelfs."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from panelfs._models import OperationProgress, OverwriteAction
    from panelfs._path import VfsPath

PathArg = Union["VfsPath", str]  # noqa: UP007
ProgressCallback = Callable[["OperationProgress"], None]
ConflictCallback = Callable[[str, "VfsPath"], "OverwriteAction"]
Options = dict[str, object]
