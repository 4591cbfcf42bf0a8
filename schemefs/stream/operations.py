"""
SchemeFS Stream: Primitive table.

Every primitive the dispatcher exposes is listed here once, with the access
mode used to resolve its identifiers, whether it mutates the filesystem and
when the locator cache must be invalidated. The dispatcher looks entries up
instead of branching per call site.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from schemefs.core.constants import READ_ONLY_MODES, AccessMode


class Invalidation(Enum):
    """When a primitive invalidates the locator cache for its identifiers."""

    NEVER = "never"
    ON_SUCCESS = "on_success"
    ALWAYS = "always"  # after the native attempt, whatever the outcome


@dataclass(frozen=True)
class PrimitiveInfo:
    """Static properties of a primitive."""

    access: Optional[AccessMode]
    mutating: bool
    invalidation: Invalidation = Invalidation.NEVER
    reports_resolution: bool = False  # honours report_errors on resolution failure


class Primitive(Enum):
    """Filesystem primitives handled by the dispatcher."""

    OPEN_READ = "open_read"
    OPEN_WRITE = "open_write"
    CLOSE = "close"
    READ = "read"
    WRITE = "write"
    SEEK = "seek"
    TELL = "tell"
    EOF = "eof"
    FLUSH = "flush"
    LOCK = "lock"
    SET_OPTION = "set_option"
    FSTAT = "fstat"
    TRUNCATE = "truncate"
    METADATA = "metadata"
    STAT = "stat"
    RENAME_SOURCE = "rename_source"
    RENAME_TARGET = "rename_target"
    UNLINK = "unlink"
    MKDIR = "mkdir"
    MKDIR_RECURSIVE = "mkdir_recursive"
    RMDIR = "rmdir"
    OPENDIR = "opendir"
    READDIR = "readdir"
    REWINDDIR = "rewinddir"
    CLOSEDIR = "closedir"

    @property
    def info(self) -> PrimitiveInfo:
        return OPERATIONS[self]


OPERATIONS: Dict[Primitive, PrimitiveInfo] = {
    # File streams
    Primitive.OPEN_READ: PrimitiveInfo(AccessMode.READ, False, reports_resolution=True),
    Primitive.OPEN_WRITE: PrimitiveInfo(
        AccessMode.WRITE, True, Invalidation.ON_SUCCESS, reports_resolution=True
    ),
    Primitive.CLOSE: PrimitiveInfo(None, False),
    Primitive.READ: PrimitiveInfo(None, False),
    Primitive.WRITE: PrimitiveInfo(None, True),
    Primitive.SEEK: PrimitiveInfo(None, False),
    Primitive.TELL: PrimitiveInfo(None, False),
    Primitive.EOF: PrimitiveInfo(None, False),
    Primitive.FLUSH: PrimitiveInfo(None, False),
    Primitive.LOCK: PrimitiveInfo(None, False),
    Primitive.SET_OPTION: PrimitiveInfo(None, False),
    Primitive.FSTAT: PrimitiveInfo(None, False),
    Primitive.TRUNCATE: PrimitiveInfo(None, True),
    # Path operations
    Primitive.METADATA: PrimitiveInfo(
        AccessMode.READ, True, Invalidation.ON_SUCCESS, reports_resolution=True
    ),
    Primitive.STAT: PrimitiveInfo(AccessMode.READ, False),
    Primitive.RENAME_SOURCE: PrimitiveInfo(
        AccessMode.READ, True, Invalidation.ON_SUCCESS, reports_resolution=True
    ),
    Primitive.RENAME_TARGET: PrimitiveInfo(
        AccessMode.WRITE, True, Invalidation.ON_SUCCESS, reports_resolution=True
    ),
    Primitive.UNLINK: PrimitiveInfo(
        AccessMode.READ, True, Invalidation.ON_SUCCESS, reports_resolution=True
    ),
    Primitive.MKDIR: PrimitiveInfo(
        AccessMode.WRITE, True, Invalidation.ALWAYS, reports_resolution=True
    ),
    Primitive.MKDIR_RECURSIVE: PrimitiveInfo(
        AccessMode.CREATE_DIRECTORY, True, Invalidation.ALWAYS, reports_resolution=True
    ),
    Primitive.RMDIR: PrimitiveInfo(
        AccessMode.READ, True, Invalidation.ALWAYS, reports_resolution=True
    ),
    # Directory streams
    Primitive.OPENDIR: PrimitiveInfo(AccessMode.READ, False, reports_resolution=True),
    Primitive.READDIR: PrimitiveInfo(None, False),
    Primitive.REWINDDIR: PrimitiveInfo(None, False),
    Primitive.CLOSEDIR: PrimitiveInfo(None, False),
}


def open_primitive(mode: str) -> Primitive:
    """Primitive for an ``open`` call with the given mode string.

    Pure-read modes (``r``, ``rb``, ``rt``) never mutate. Other ``r`` modes
    (``r+``) resolve like reads but may modify an existing file.
    """
    if mode in READ_ONLY_MODES:
        return Primitive.OPEN_READ
    return Primitive.OPEN_WRITE


def open_access(mode: str) -> AccessMode:
    """Access mode used to resolve an ``open`` target."""
    return AccessMode.READ if mode.startswith("r") else AccessMode.WRITE
