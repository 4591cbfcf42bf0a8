"""
SchemeFS stream dispatcher.

This module implements every filesystem primitive on top of abstract
identifiers:
- File streams (open, read, write, seek, tell, eof, flush, lock, close)
- Path metadata (stat, touch/chown/chgrp/chmod)
- Namespace changes (rename, unlink, mkdir, rmdir)
- Directory streams (opendir, readdir, rewinddir, closedir)

Each primitive resolves its identifiers through the PathResolver, forwards
the concrete path to the native call and, for mutating primitives, asks the
locator to drop cached resolutions before returning. Failures are returned
as ``False``/``None``; the cause is kept in ``last_error``.
"""

import errno
import fcntl
import io
import os
import select
import shutil
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from schemefs.core.config import ConfigManager
from schemefs.core.constants import (
    AccessMode,
    ConfigKey,
    LockOperation,
    MetadataOption,
    StreamOption,
)
from schemefs.core.logging import Logger
from schemefs.core.uri import ResourceUri
from schemefs.core.validators import ValidationError, validate_permissions
from schemefs.locator.base import ResourceLocator
from schemefs.stream.errors import (
    InvalidOperationError,
    NativeIOError,
    StreamError,
    UnresolvedIdentifierError,
)
from schemefs.stream.handles import DirectoryHandle, FileHandle
from schemefs.stream.operations import Invalidation, Primitive, open_access, open_primitive
from schemefs.stream.resolver import PathResolver

UriLike = Union[str, ResourceUri]

_LOCK_BASE_OPERATIONS = {LockOperation.SHARED, LockOperation.EXCLUSIVE, LockOperation.UNLOCK}


def _valid_touch_times(value: Any) -> bool:
    """None, or a sequence of at most two timestamps (each may be None)."""
    if value is None:
        return True
    if not isinstance(value, (list, tuple)) or len(value) > 2:
        return False
    return all(
        t is None or (isinstance(t, (int, float)) and not isinstance(t, bool))
        for t in value
    )


class StreamDispatcher:
    """
    Filesystem primitives over scheme identifiers.

    Integration Points:
    - ResourceLocator: injected at construction; None makes every
      resolution fail closed
    - PathResolver: maps identifiers to concrete paths per access mode
    - ConfigManager: default ``report_errors`` / ``allow_root_synthesis``

    Thread Safety:
    - Handle allocation and release are locked
    - A single handle must not be used from several threads at once
    """

    def __init__(
        self,
        locator: Optional[ResourceLocator] = None,
        config: Optional[ConfigManager] = None,
        report_errors: Optional[bool] = None,
        allow_root_synthesis: Optional[bool] = None,
        logger: Optional[Logger] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            locator: Resource locator used for every resolution
            config: Configuration manager providing the ``stream`` section
            report_errors: Default for the per-call ``report_errors`` flag
            allow_root_synthesis: Let WRITE resolution fall back to the bare
                                  scheme root
            logger: Logger (``schemefs.stream`` when None)
        """
        stream_config = config.section(ConfigKey.STREAM) if config is not None else {}

        self.locator = locator
        self.logger = logger if logger is not None else Logger("schemefs.stream")
        self.report_errors = (
            report_errors
            if report_errors is not None
            else bool(stream_config.get(ConfigKey.REPORT_ERRORS, False))
        )
        self.resolver = PathResolver(
            locator,
            allow_root_synthesis=(
                allow_root_synthesis
                if allow_root_synthesis is not None
                else bool(stream_config.get(ConfigKey.ALLOW_ROOT_SYNTHESIS, False))
            ),
            logger=self.logger,
        )

        # Handle tracking
        self.handles: Dict[int, Union[FileHandle, DirectoryHandle]] = {}
        self.handle_counter = 0
        self.handle_lock = threading.Lock()

        self.last_error: Optional[StreamError] = None

    # =========================================================================
    # Resolution, failure recording and invalidation
    # =========================================================================

    def _should_report(self, report_errors: Optional[bool]) -> bool:
        return self.report_errors if report_errors is None else report_errors

    def _fail(
        self,
        primitive: Primitive,
        error: StreamError,
        report_errors: Optional[bool] = None,
    ) -> None:
        """Record a failure and emit the diagnostic the primitive calls for."""
        self.last_error = error

        loud = (
            isinstance(error, UnresolvedIdentifierError)
            and primitive.info.reports_resolution
            and self._should_report(report_errors)
        )
        if loud:
            self.logger.warning(f"{primitive.value}(): {error.message}", uri=error.uri)
        else:
            self.logger.debug(
                f"{primitive.value}() failed: {error.message}", uri=error.uri, errno=error.errno
            )

    def _resolve(
        self,
        primitive: Primitive,
        uri: UriLike,
        report_errors: Optional[bool] = None,
        access: Optional[AccessMode] = None,
    ) -> Optional[str]:
        mode = access if access is not None else primitive.info.access
        path = self.resolver.resolve(uri, mode)
        if path is None:
            if mode is AccessMode.READ:
                message = f"path for {uri} does not exist"
            else:
                message = f"could not find a parent directory for {uri}"
            self._fail(primitive, UnresolvedIdentifierError(message, uri=str(uri)), report_errors)
        return path

    def _native(self, primitive: Primitive, uri: Optional[str], call: Callable, *args) -> Tuple[bool, Any]:
        """Run a native call, converting OSError into a recorded failure."""
        try:
            return True, call(*args)
        except io.UnsupportedOperation as e:
            self._fail(primitive, NativeIOError(str(e), uri=uri, errno=errno.EBADF))
        except OSError as e:
            self._fail(primitive, NativeIOError.from_os_error(e, uri=uri))
        except ValueError as e:
            # I/O on a closed file object
            self._fail(primitive, NativeIOError(str(e), uri=uri, errno=errno.EBADF))
        return False, None

    def _invalidate(self, primitive: Primitive, uris: Iterable[UriLike], succeeded: bool) -> None:
        """Drop locator cache entries according to the primitive's policy."""
        policy = primitive.info.invalidation
        if policy is Invalidation.NEVER or self.locator is None:
            return
        if policy is Invalidation.ON_SUCCESS and not succeeded:
            return

        for uri in uris:
            self.locator.clear_cache(str(uri))

    # =========================================================================
    # Handle table
    # =========================================================================

    def _allocate_handle(self, handle: Union[FileHandle, DirectoryHandle]) -> int:
        with self.handle_lock:
            handle_id = self.handle_counter
            self.handles[handle_id] = handle
            self.handle_counter += 1
            return handle_id

    def _release_handle(self, handle_id: int) -> None:
        with self.handle_lock:
            self.handles.pop(handle_id, None)

    def _file_handle(self, primitive: Primitive, fh: Optional[int]) -> Optional[FileHandle]:
        handle = self.handles.get(fh) if fh is not None else None
        if not isinstance(handle, FileHandle):
            self._fail(primitive, NativeIOError(f"invalid file handle: {fh}", errno=errno.EBADF))
            return None
        return handle

    def _dir_handle(self, primitive: Primitive, dh: Optional[int]) -> Optional[DirectoryHandle]:
        handle = self.handles.get(dh) if dh is not None else None
        if not isinstance(handle, DirectoryHandle):
            self._fail(primitive, NativeIOError(f"invalid directory handle: {dh}", errno=errno.EBADF))
            return None
        return handle

    def get_handle(self, handle_id: int) -> Optional[Union[FileHandle, DirectoryHandle]]:
        """Handle record for an id, or None."""
        return self.handles.get(handle_id)

    # =========================================================================
    # File streams
    # =========================================================================

    def open(self, uri: UriLike, mode: str = "rb", report_errors: Optional[bool] = None) -> Optional[int]:
        """
        Open a file stream.

        Modes starting with ``r`` resolve an existing file; any other mode
        may create the file below its nearest existing ancestor. Every mode
        except pure reads invalidates the locator cache on success.

        Args:
            uri: Identifier to open
            mode: ``open()`` mode string; text modes are opened as binary
            report_errors: Warn when the identifier cannot be resolved

        Returns:
            Handle id, or None on failure
        """
        self.last_error = None
        uri = str(uri)
        primitive = open_primitive(mode)

        path = self._resolve(primitive, uri, report_errors, access=open_access(mode))
        if path is None:
            return None

        native_mode = mode.replace("t", "")
        if "b" not in native_mode:
            native_mode += "b"

        try:
            stream = open(path, native_mode)
        except ValueError as e:
            self._fail(primitive, InvalidOperationError(f"invalid mode {mode!r}: {e}", uri=uri))
            return None
        except OSError as e:
            self._fail(primitive, NativeIOError.from_os_error(e, uri=uri))
            return None
        finally:
            self._invalidate(primitive, [uri], self.last_error is None)

        fh = self._allocate_handle(FileHandle(uri=uri, real_path=path, mode=mode, file=stream))
        self.logger.debug(f"Opened {uri} -> {path}", fh=fh, mode=mode)
        return fh

    def close(self, fh: int) -> bool:
        """Close a file stream and release its handle."""
        self.last_error = None
        handle = self._file_handle(Primitive.CLOSE, fh)
        if handle is None:
            return False

        self._release_handle(fh)
        ok, _ = self._native(Primitive.CLOSE, handle.uri, handle.file.close)
        return ok

    def read(self, fh: int, count: int) -> Optional[bytes]:
        """
        Read up to ``count`` bytes.

        Returns:
            Bytes read (shorter than ``count`` at end of file), or None
        """
        self.last_error = None
        handle = self._file_handle(Primitive.READ, fh)
        if handle is None:
            return None

        if handle.read_timeout is not None:
            ok, ready = self._native(
                Primitive.READ, handle.uri, select.select, [handle.fileno()], [], [], handle.read_timeout
            )
            if not ok:
                return None
            if not ready[0]:
                self._fail(
                    Primitive.READ,
                    NativeIOError("read timed out", uri=handle.uri, errno=errno.ETIMEDOUT),
                )
                return None

        ok, data = self._native(Primitive.READ, handle.uri, handle.file.read, count)
        if not ok:
            return None

        # Non-blocking stream with nothing available
        if data is None:
            data = b""
        if len(data) < count:
            handle.at_eof = True
        return data

    def write(self, fh: int, data: bytes) -> Optional[int]:
        """
        Write bytes to a stream.

        Returns:
            Number of bytes written, or None on failure
        """
        self.last_error = None
        handle = self._file_handle(Primitive.WRITE, fh)
        if handle is None:
            return None

        ok, written = self._native(Primitive.WRITE, handle.uri, handle.file.write, data)
        if not ok:
            return None

        if handle.write_through:
            ok, _ = self._native(Primitive.WRITE, handle.uri, handle.file.flush)
            if not ok:
                return None

        return written

    def seek(self, fh: int, offset: int, whence: int = os.SEEK_SET) -> bool:
        self.last_error = None
        handle = self._file_handle(Primitive.SEEK, fh)
        if handle is None:
            return False

        ok, _ = self._native(Primitive.SEEK, handle.uri, handle.file.seek, offset, whence)
        if ok:
            handle.at_eof = False
        return ok

    def tell(self, fh: int) -> Optional[int]:
        self.last_error = None
        handle = self._file_handle(Primitive.TELL, fh)
        if handle is None:
            return None

        ok, position = self._native(Primitive.TELL, handle.uri, handle.file.tell)
        return position if ok else None

    def eof(self, fh: int) -> bool:
        """Whether a read has reached end of file.

        An invalid handle reports True so read loops terminate.
        """
        self.last_error = None
        handle = self._file_handle(Primitive.EOF, fh)
        if handle is None:
            return True
        return handle.at_eof

    def flush(self, fh: int) -> bool:
        self.last_error = None
        handle = self._file_handle(Primitive.FLUSH, fh)
        if handle is None:
            return False

        ok, _ = self._native(Primitive.FLUSH, handle.uri, handle.file.flush)
        return ok

    def truncate(self, fh: int, size: int) -> bool:
        self.last_error = None
        handle = self._file_handle(Primitive.TRUNCATE, fh)
        if handle is None:
            return False

        ok, _ = self._native(Primitive.TRUNCATE, handle.uri, handle.file.truncate, size)
        return ok

    def fstat(self, fh: int) -> Optional[os.stat_result]:
        """Stat an open stream (pending writes are flushed first)."""
        self.last_error = None
        handle = self._file_handle(Primitive.FSTAT, fh)
        if handle is None:
            return None

        ok, _ = self._native(Primitive.FSTAT, handle.uri, handle.file.flush)
        if not ok:
            return None
        ok, result = self._native(Primitive.FSTAT, handle.uri, os.fstat, handle.fileno())
        return result if ok else None

    def lock(self, fh: int, operation: int) -> bool:
        """
        Apply an advisory lock.

        Args:
            fh: File handle
            operation: LOCK_SH, LOCK_EX or LOCK_UN, optionally OR-ed with
                       LOCK_NB (fail immediately instead of blocking)

        Returns:
            True if the lock operation succeeded
        """
        self.last_error = None
        if not isinstance(operation, int) or isinstance(operation, bool):
            self._fail(Primitive.LOCK, InvalidOperationError(f"unsupported lock operation: {operation!r}"))
            return False

        base = operation & ~LockOperation.NON_BLOCKING
        valid = operation == LockOperation.NON_BLOCKING or base in _LOCK_BASE_OPERATIONS
        if not valid:
            self._fail(Primitive.LOCK, InvalidOperationError(f"unsupported lock operation: {operation}"))
            return False

        handle = self._file_handle(Primitive.LOCK, fh)
        if handle is None:
            return False

        ok, _ = self._native(Primitive.LOCK, handle.uri, fcntl.flock, handle.fileno(), int(operation))
        return ok

    def set_option(self, fh: int, option: int, arg1: Any = None, arg2: Any = None) -> bool:
        """
        Change a per-stream option.

        Args:
            fh: File handle
            option: StreamOption value
            arg1: BLOCKING: truthy for blocking mode; READ_TIMEOUT: seconds
            arg2: READ_TIMEOUT: microseconds; WRITE_BUFFER: buffer size
                  (0 writes through on every call)
        """
        self.last_error = None
        handle = self._file_handle(Primitive.SET_OPTION, fh)
        if handle is None:
            return False

        if option == StreamOption.BLOCKING:
            ok, _ = self._native(
                Primitive.SET_OPTION, handle.uri, os.set_blocking, handle.fileno(), bool(arg1)
            )
            return ok

        if option == StreamOption.READ_TIMEOUT:
            handle.read_timeout = int(arg1 or 0) + int(arg2 or 0) / 1_000_000
            return True

        if option == StreamOption.WRITE_BUFFER:
            handle.write_through = not arg2
            if handle.write_through:
                ok, _ = self._native(Primitive.SET_OPTION, handle.uri, handle.file.flush)
                return ok
            return True

        self._fail(
            Primitive.SET_OPTION,
            InvalidOperationError(f"unsupported stream option: {option}", uri=handle.uri),
        )
        return False

    # =========================================================================
    # Path operations
    # =========================================================================

    def stat(self, uri: UriLike, quiet: bool = False, link: bool = False) -> Optional[os.stat_result]:
        """
        Stat an identifier.

        Args:
            uri: Identifier to stat
            quiet: Never warn when the native stat fails
            link: Do not follow a final symlink (lstat)

        Returns:
            Stat result, or None if unresolved or the native call failed
        """
        self.last_error = None
        uri = str(uri)
        path = self._resolve(Primitive.STAT, uri)
        if path is None:
            return None

        ok, result = self._native(Primitive.STAT, uri, os.lstat if link else os.stat, path)
        if not ok and not quiet and os.path.lexists(path):
            self.logger.warning(f"stat(): {self.last_error.message}", uri=uri, path=path)
        return result if ok else None

    def metadata(
        self,
        uri: UriLike,
        option: int,
        value: Any = None,
        report_errors: Optional[bool] = None,
    ) -> bool:
        """
        Change metadata of an existing resource.

        Args:
            uri: Identifier of an existing file or directory
            option: MetadataOption
            value: TOUCH: ``(mtime, atime)`` or None for now;
                   OWNER/OWNER_NAME: uid or user name;
                   GROUP/GROUP_NAME: gid or group name;
                   ACCESS: permission bits
            report_errors: Warn when the identifier cannot be resolved

        Returns:
            True if the native call succeeded
        """
        self.last_error = None
        uri = str(uri)

        try:
            option = MetadataOption(option)
        except ValueError:
            self._fail(
                Primitive.METADATA, InvalidOperationError(f"unsupported metadata option: {option}", uri=uri)
            )
            return False

        if option is not MetadataOption.TOUCH and (value is None or isinstance(value, bool)):
            self._fail(
                Primitive.METADATA, InvalidOperationError(f"{option.name} requires a value", uri=uri)
            )
            return False
        if option is MetadataOption.ACCESS and not isinstance(value, int):
            self._fail(
                Primitive.METADATA, InvalidOperationError(f"invalid permission bits: {value!r}", uri=uri)
            )
            return False
        if option is MetadataOption.ACCESS:
            try:
                validate_permissions(value)
            except ValidationError as e:
                self._fail(Primitive.METADATA, InvalidOperationError(str(e), uri=uri))
                return False
        if option is MetadataOption.TOUCH and not _valid_touch_times(value):
            self._fail(
                Primitive.METADATA, InvalidOperationError(f"invalid touch times: {value!r}", uri=uri)
            )
            return False

        path = self._resolve(Primitive.METADATA, uri, report_errors)
        if path is None:
            return False

        if option is MetadataOption.TOUCH:
            ok, _ = self._native(Primitive.METADATA, uri, os.utime, path, self._touch_times(value))
        elif option in (MetadataOption.OWNER, MetadataOption.OWNER_NAME):
            ok = self._chown(uri, path, user=value)
        elif option in (MetadataOption.GROUP, MetadataOption.GROUP_NAME):
            ok = self._chown(uri, path, group=value)
        else:
            ok, _ = self._native(Primitive.METADATA, uri, os.chmod, path, value)

        self._invalidate(Primitive.METADATA, [uri], ok)
        return ok

    def _touch_times(self, value: Any) -> Optional[Tuple[float, float]]:
        if value is None:
            return None
        mtime, atime = (list(value) + [None, None])[:2]
        if mtime is None:
            return None
        if atime is None:
            atime = mtime
        return atime, mtime

    def _chown(self, uri: str, path: str, user: Any = None, group: Any = None) -> bool:
        try:
            ok, _ = self._native(Primitive.METADATA, uri, shutil.chown, path, user, group)
        except LookupError as e:
            self._fail(Primitive.METADATA, InvalidOperationError(str(e), uri=uri))
            return False
        return ok

    def rename(self, source: UriLike, target: UriLike, report_errors: Optional[bool] = None) -> bool:
        """
        Rename ``source`` to ``target``.

        ``source`` must exist; ``target`` may be synthesized below an
        existing ancestor. Both identifiers are invalidated on success.
        """
        self.last_error = None
        source, target = str(source), str(target)

        source_path = self._resolve(Primitive.RENAME_SOURCE, source, report_errors)
        target_path = self._resolve(Primitive.RENAME_TARGET, target, report_errors)
        if source_path is None or target_path is None:
            return False

        ok, _ = self._native(Primitive.RENAME_SOURCE, source, os.rename, source_path, target_path)
        self._invalidate(Primitive.RENAME_SOURCE, [source, target], ok)
        if ok:
            self.logger.debug(f"Renamed {source} -> {target}", source_path=source_path, target_path=target_path)
        return ok

    def unlink(self, uri: UriLike, report_errors: Optional[bool] = None) -> bool:
        """Delete a file."""
        self.last_error = None
        uri = str(uri)

        path = self._resolve(Primitive.UNLINK, uri, report_errors)
        if path is None:
            return False

        ok, _ = self._native(Primitive.UNLINK, uri, os.unlink, path)
        self._invalidate(Primitive.UNLINK, [uri], ok)
        return ok

    def mkdir(
        self,
        uri: UriLike,
        mode: int = 0o777,
        recursive: bool = False,
        report_errors: Optional[bool] = None,
    ) -> bool:
        """
        Create a directory.

        Non-recursive creation needs the parent to exist natively; recursive
        creation builds every missing level below the nearest existing
        ancestor. The identifier is invalidated once per call, whatever the
        outcome.
        """
        self.last_error = None
        uri = str(uri)
        primitive = Primitive.MKDIR_RECURSIVE if recursive else Primitive.MKDIR

        ok = False
        try:
            path = self._resolve(primitive, uri, report_errors)
            if path is not None:
                ok, _ = self._native(primitive, uri, os.makedirs if recursive else os.mkdir, path, mode)
        finally:
            self._invalidate(primitive, [uri], ok)
        return ok

    def rmdir(self, uri: UriLike, report_errors: Optional[bool] = None) -> bool:
        """
        Remove an empty directory.

        An identifier that no longer resolves (already removed) fails with
        UnresolvedIdentifierError; a non-empty directory fails with
        NativeIOError (ENOTEMPTY). The identifier is invalidated once per
        call, whatever the outcome.
        """
        self.last_error = None
        uri = str(uri)

        ok = False
        try:
            path = self._resolve(Primitive.RMDIR, uri, report_errors)
            if path is not None:
                ok, _ = self._native(Primitive.RMDIR, uri, os.rmdir, path)
        finally:
            self._invalidate(Primitive.RMDIR, [uri], ok)
        return ok

    # =========================================================================
    # Directory streams
    # =========================================================================

    def opendir(self, uri: UriLike, report_errors: Optional[bool] = None) -> Optional[int]:
        """Open a directory stream; returns a handle id or None."""
        self.last_error = None
        uri = str(uri)

        path = self._resolve(Primitive.OPENDIR, uri, report_errors)
        if path is None:
            return None

        ok, handle = self._native(Primitive.OPENDIR, uri, DirectoryHandle.open, uri, path)
        if not ok:
            return None
        return self._allocate_handle(handle)

    def readdir(self, dh: int) -> Optional[str]:
        """Next entry name, or None at the end of the directory."""
        self.last_error = None
        handle = self._dir_handle(Primitive.READDIR, dh)
        if handle is None:
            return None
        return handle.next_entry()

    def rewinddir(self, dh: int) -> bool:
        self.last_error = None
        handle = self._dir_handle(Primitive.REWINDDIR, dh)
        if handle is None:
            return False
        handle.rewind()
        return True

    def closedir(self, dh: int) -> bool:
        self.last_error = None
        handle = self._dir_handle(Primitive.CLOSEDIR, dh)
        if handle is None:
            return False
        self._release_handle(dh)
        return True

    def listdir(self, uri: UriLike) -> Optional[list]:
        """All entries of a directory except ``.`` and ``..``."""
        dh = self.opendir(uri)
        if dh is None:
            return None
        try:
            entries = []
            name = self.readdir(dh)
            while name is not None:
                if name not in (".", ".."):
                    entries.append(name)
                name = self.readdir(dh)
            return entries
        finally:
            self.closedir(dh)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close_all(self) -> int:
        """Close every open handle; returns how many were open."""
        with self.handle_lock:
            handles = list(self.handles.items())
            self.handles.clear()

        for handle_id, handle in handles:
            if isinstance(handle, FileHandle):
                try:
                    handle.file.close()
                except OSError as e:
                    self.logger.warning(f"Failed to close {handle.uri}: {e}", fh=handle_id)
        return len(handles)

    def get_stats(self) -> Dict[str, Any]:
        with self.handle_lock:
            handles = list(self.handles.values())
        return {
            "open_files": sum(1 for h in handles if isinstance(h, FileHandle)),
            "open_directories": sum(1 for h in handles if isinstance(h, DirectoryHandle)),
            "report_errors": self.report_errors,
            "locator_bound": self.locator is not None,
        }
