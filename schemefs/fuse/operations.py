"""
FUSE filesystem operations for SchemeFS.

This module exposes a StreamRegistry as a mounted filesystem. Every
registered scheme appears as a top-level directory of the mount point:

    <mount>/res/config/app.yaml  <->  res://config/app.yaml

so that native filesystem calls on the mount are routed through the
scheme's StreamDispatcher:
- Metadata operations (getattr, chmod, chown, utimens)
- Directory operations (readdir, mkdir, rmdir)
- File operations (open, create, read, write, truncate, flush, release, unlink, rename)
"""

import errno
import os
import stat
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from fuse import FuseOSError, Operations

from schemefs.core.constants import MetadataOption
from schemefs.core.logging import Logger
from schemefs.core.uri import ResourceUri
from schemefs.registry import StreamRegistry
from schemefs.stream.dispatcher import StreamDispatcher


@dataclass
class MountHandle:
    """An open file on the mount, tied to its dispatcher handle."""

    dispatcher: StreamDispatcher
    fh: int  # Dispatcher handle id
    uri: str  # Identifier used to open the file
    flags: int  # Open flags (O_RDONLY, O_WRONLY, etc.)


def mode_from_flags(flags: int) -> str:
    """Translate ``open(2)`` flags into an ``open()`` mode string."""
    accmode = flags & os.O_ACCMODE
    if accmode == os.O_RDONLY:
        return "rb"
    if flags & os.O_APPEND:
        return "ab" if accmode == os.O_WRONLY else "a+b"
    if flags & os.O_TRUNC:
        return "wb" if accmode == os.O_WRONLY else "w+b"
    return "r+b"


class SchemeFSOperations(Operations):
    """
    FUSE callbacks backed by scheme dispatchers.

    Integration Points:
    - StreamRegistry: maps the first path component to a dispatcher
    - StreamDispatcher: resolves identifiers and performs native I/O

    Thread Safety:
    - Mount handle tracking uses a lock
    - Each FUSE file handle maps to exactly one dispatcher handle
    """

    def __init__(self, registry: StreamRegistry, read_only: bool = False, logger: Optional[Logger] = None):
        """
        Initialize FUSE operations.

        Args:
            registry: Registry whose schemes are exposed
            read_only: Reject every mutating call with EROFS
            logger: Logger (``schemefs.fuse`` when None)
        """
        self.registry = registry
        self.read_only = read_only
        self.logger = logger if logger is not None else Logger("schemefs.fuse")

        # File handle tracking
        self.fds: Dict[int, MountHandle] = {}
        self.fd_counter = 0
        self.fd_lock = threading.Lock()

        self.mounted_at = time.time()
        self.logger.info("FUSE operations initialized", schemes=",".join(registry.schemes()))

    # =========================================================================
    # Path mapping
    # =========================================================================

    def _to_uri(self, path: str) -> Optional[ResourceUri]:
        """Mount path to identifier; None for the mount root."""
        parts = [part for part in path.split("/") if part]
        if not parts:
            return None
        return ResourceUri(parts[0], "/".join(parts[1:]))

    def _route(self, path: str) -> Tuple[StreamDispatcher, str]:
        """
        Dispatcher and identifier for a mount path.

        Raises:
            FuseOSError: EACCES for the mount root, ENOENT for an unknown scheme
        """
        uri = self._to_uri(path)
        if uri is None:
            raise FuseOSError(errno.EACCES)
        dispatcher = self.registry.dispatcher_for(uri)
        if dispatcher is None:
            raise FuseOSError(errno.ENOENT)
        return dispatcher, str(uri)

    def _raise(self, dispatcher: StreamDispatcher) -> None:
        error = dispatcher.last_error
        raise FuseOSError(error.errno if error is not None else errno.EIO)

    def _check_writable(self) -> None:
        if self.read_only:
            raise FuseOSError(errno.EROFS)

    def _directory_attrs(self) -> Dict[str, Any]:
        return {
            "st_mode": stat.S_IFDIR | 0o755,
            "st_nlink": 2,
            "st_size": 0,
            "st_ctime": self.mounted_at,
            "st_mtime": self.mounted_at,
            "st_atime": self.mounted_at,
            "st_uid": os.getuid(),
            "st_gid": os.getgid(),
        }

    # =========================================================================
    # FUSE Metadata Operations
    # =========================================================================

    def getattr(self, path: str, fh: Optional[int] = None) -> Dict[str, Any]:
        """
        Get file attributes (equivalent to lstat()).

        The mount root and unresolvable scheme roots report as directories.

        Raises:
            FuseOSError: ENOENT if the identifier does not resolve
        """
        uri = self._to_uri(path)
        if uri is None:
            return self._directory_attrs()

        dispatcher, uri_str = self._route(path)
        st = dispatcher.stat(uri_str, quiet=True, link=True)
        if st is None:
            if uri.is_root:
                return self._directory_attrs()
            self._raise(dispatcher)

        return {
            "st_mode": st.st_mode,
            "st_nlink": st.st_nlink,
            "st_size": st.st_size,
            "st_ctime": st.st_ctime,
            "st_mtime": st.st_mtime,
            "st_atime": st.st_atime,
            "st_uid": st.st_uid,
            "st_gid": st.st_gid,
        }

    def chmod(self, path: str, mode: int) -> None:
        self._check_writable()
        dispatcher, uri = self._route(path)
        if not dispatcher.metadata(uri, MetadataOption.ACCESS, stat.S_IMODE(mode)):
            self._raise(dispatcher)

    def chown(self, path: str, uid: int, gid: int) -> None:
        """Change ownership; -1 leaves a value unchanged."""
        self._check_writable()
        dispatcher, uri = self._route(path)
        if uid != -1 and not dispatcher.metadata(uri, MetadataOption.OWNER, uid):
            self._raise(dispatcher)
        if gid != -1 and not dispatcher.metadata(uri, MetadataOption.GROUP, gid):
            self._raise(dispatcher)

    def utimens(self, path: str, times=None) -> None:
        """
        Update access and modification times.

        Args:
            path: Mount path
            times: (atime, mtime) tuple or None for current time
        """
        self._check_writable()
        dispatcher, uri = self._route(path)
        value = None
        if times is not None:
            atime, mtime = times
            value = (mtime, atime)
        if not dispatcher.metadata(uri, MetadataOption.TOUCH, value):
            self._raise(dispatcher)

    # =========================================================================
    # FUSE Directory Operations
    # =========================================================================

    def readdir(self, path: str, fh: int) -> List[str]:
        """
        List directory contents.

        The mount root lists registered schemes.
        """
        if self._to_uri(path) is None:
            return [".", ".."] + list(self.registry.schemes())

        dispatcher, uri = self._route(path)
        dh = dispatcher.opendir(uri)
        if dh is None:
            self._raise(dispatcher)

        entries = []
        try:
            name = dispatcher.readdir(dh)
            while name is not None:
                entries.append(name)
                name = dispatcher.readdir(dh)
        finally:
            dispatcher.closedir(dh)
        return entries

    def mkdir(self, path: str, mode: int) -> None:
        self._check_writable()
        dispatcher, uri = self._route(path)
        if not dispatcher.mkdir(uri, mode):
            self._raise(dispatcher)

    def rmdir(self, path: str) -> None:
        self._check_writable()
        dispatcher, uri = self._route(path)
        if not dispatcher.rmdir(uri):
            self._raise(dispatcher)

    # =========================================================================
    # FUSE File Operations
    # =========================================================================

    def open(self, path: str, flags: int) -> int:
        """
        Open file and return a mount handle id.

        Raises:
            FuseOSError: EROFS for writes on a read-only mount, or the
                         dispatcher's errno
        """
        if flags & (os.O_WRONLY | os.O_RDWR | os.O_APPEND | os.O_TRUNC):
            self._check_writable()

        dispatcher, uri = self._route(path)
        fh = dispatcher.open(uri, mode_from_flags(flags))
        if fh is None:
            self._raise(dispatcher)

        return self._allocate_file_handle(dispatcher, fh, uri, flags)

    def create(self, path: str, mode: int, fi=None) -> int:
        """Create (truncating) and open a file."""
        self._check_writable()
        dispatcher, uri = self._route(path)

        fh = dispatcher.open(uri, "w+b")
        if fh is None:
            self._raise(dispatcher)
        if not dispatcher.metadata(uri, MetadataOption.ACCESS, stat.S_IMODE(mode)):
            self.logger.warning(
                f"Could not set mode on created file: {uri}",
                mode=oct(stat.S_IMODE(mode)),
                error=dispatcher.last_error.message,
            )

        self.logger.debug(f"Created file: {uri}")
        return self._allocate_file_handle(dispatcher, fh, uri, os.O_RDWR | os.O_CREAT)

    def read(self, path: str, size: int, offset: int, fh: int) -> bytes:
        handle = self._get_file_handle(fh)
        dispatcher = handle.dispatcher

        if not dispatcher.seek(handle.fh, offset):
            self._raise(dispatcher)
        data = dispatcher.read(handle.fh, size)
        if data is None:
            self._raise(dispatcher)
        return data

    def write(self, path: str, data: bytes, offset: int, fh: int) -> int:
        self._check_writable()
        handle = self._get_file_handle(fh)
        dispatcher = handle.dispatcher

        if not (handle.flags & os.O_APPEND) and not dispatcher.seek(handle.fh, offset):
            self._raise(dispatcher)
        written = dispatcher.write(handle.fh, data)
        if written is None:
            self._raise(dispatcher)
        return written

    def truncate(self, path: str, length: int, fh: Optional[int] = None) -> None:
        self._check_writable()
        if fh is not None and fh in self.fds:
            handle = self.fds[fh]
            if not handle.dispatcher.truncate(handle.fh, length):
                self._raise(handle.dispatcher)
            return

        dispatcher, uri = self._route(path)
        dh = dispatcher.open(uri, "r+b")
        if dh is None:
            self._raise(dispatcher)
        try:
            if not dispatcher.truncate(dh, length):
                self._raise(dispatcher)
        finally:
            dispatcher.close(dh)

    def flush(self, path: str, fh: int) -> None:
        handle = self._get_file_handle(fh)
        if not handle.dispatcher.flush(handle.fh):
            self._raise(handle.dispatcher)

    def fsync(self, path: str, datasync: bool, fh: int) -> None:
        handle = self._get_file_handle(fh)
        dispatcher = handle.dispatcher
        if not dispatcher.flush(handle.fh):
            self._raise(dispatcher)

        record = dispatcher.get_handle(handle.fh)
        try:
            if datasync:
                os.fdatasync(record.fileno())
            else:
                os.fsync(record.fileno())
        except OSError as e:
            raise FuseOSError(e.errno)

    def release(self, path: str, fh: int) -> None:
        """Release (close) a mount handle."""
        handle = self._release_file_handle(fh)
        if handle is not None and not handle.dispatcher.close(handle.fh):
            self.logger.warning(f"Close failed: {handle.uri}", fh=fh)

    def unlink(self, path: str) -> None:
        self._check_writable()
        dispatcher, uri = self._route(path)
        if not dispatcher.unlink(uri):
            self._raise(dispatcher)

    def rename(self, old: str, new: str) -> None:
        """
        Rename within one scheme dispatcher.

        Raises:
            FuseOSError: EXDEV across dispatchers
        """
        self._check_writable()
        dispatcher, source = self._route(old)
        target_dispatcher, target = self._route(new)
        if target_dispatcher is not dispatcher:
            raise FuseOSError(errno.EXDEV)
        if not dispatcher.rename(source, target):
            self._raise(dispatcher)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _allocate_file_handle(self, dispatcher: StreamDispatcher, fh: int, uri: str, flags: int) -> int:
        with self.fd_lock:
            fh_id = self.fd_counter
            self.fds[fh_id] = MountHandle(dispatcher=dispatcher, fh=fh, uri=uri, flags=flags)
            self.fd_counter += 1
            return fh_id

    def _get_file_handle(self, fh: int) -> MountHandle:
        """
        Raises:
            FuseOSError: EBADF if handle doesn't exist
        """
        handle = self.fds.get(fh)
        if handle is None:
            raise FuseOSError(errno.EBADF)
        return handle

    def _release_file_handle(self, fh: int) -> Optional[MountHandle]:
        with self.fd_lock:
            return self.fds.pop(fh, None)

    def destroy(self, path: str) -> None:
        """Close every handle still open at unmount."""
        count = self.registry.close_all()
        with self.fd_lock:
            self.fds.clear()
        self.logger.info("Filesystem destroyed", closed_handles=count)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "open_files": len(self.fds),
            "schemes": len(self.registry.schemes()),
            "read_only": self.read_only,
        }
