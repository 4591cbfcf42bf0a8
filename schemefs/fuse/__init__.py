"""SchemeFS FUSE Interface.

This module mounts a StreamRegistry as a filesystem:
- SchemeFSOperations: FUSE callback implementations
- MountHandle: open file on the mount

Usage:
    from schemefs.fuse import SchemeFSOperations

    ops = SchemeFSOperations(registry)
"""

from schemefs.fuse.operations import MountHandle, SchemeFSOperations

__all__ = [
    "SchemeFSOperations",
    "MountHandle",
]
