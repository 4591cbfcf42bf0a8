"""SchemeFS Stream Layer.

This layer turns identifiers into native filesystem calls:
- PathResolver: identifier + access mode -> concrete path
- StreamDispatcher: every filesystem primitive, with cache invalidation
- OPERATIONS: per-primitive access mode and invalidation policy
- StreamError family: failure taxonomy recorded on ``last_error``
"""

from .dispatcher import StreamDispatcher
from .errors import InvalidOperationError, NativeIOError, StreamError, UnresolvedIdentifierError
from .handles import DirectoryHandle, FileHandle
from .operations import OPERATIONS, Invalidation, Primitive, PrimitiveInfo
from .resolver import PathResolver

__all__ = [
    # Resolution
    "PathResolver",
    # Dispatch
    "StreamDispatcher",
    "FileHandle",
    "DirectoryHandle",
    # Primitive table
    "OPERATIONS",
    "Invalidation",
    "Primitive",
    "PrimitiveInfo",
    # Errors
    "StreamError",
    "UnresolvedIdentifierError",
    "NativeIOError",
    "InvalidOperationError",
]
