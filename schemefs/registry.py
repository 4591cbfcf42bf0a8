#!/usr/bin/env python3
"""Scheme registration for SchemeFS.

A StreamRegistry claims scheme prefixes for dispatchers. Calls made through
the registry with a matching identifier are routed to the owning
dispatcher, and behave like the corresponding ``open``/``os`` functions:
failures raise ``OSError`` subclasses.

Example:
    >>> locator = SchemeLocator({"res": {"config": ["/srv/cfg"]}})
    >>> registry = StreamRegistry()
    >>> registry.register_locator(locator, StreamDispatcher(locator))
    >>> with registry.open("res://config/app.yaml", "w") as f:
    ...     f.write("debug: true\\n")
"""

import errno
import io
import os
import threading
from typing import Dict, List, Optional, Tuple, Union

from schemefs.core.constants import Limits, LockOperation
from schemefs.core.logging import Logger
from schemefs.core.uri import ResourceUri
from schemefs.core.validators import ValidationError, validate_scheme
from schemefs.stream.dispatcher import StreamDispatcher
from schemefs.stream.errors import StreamError, UnresolvedIdentifierError

UriLike = Union[str, ResourceUri]


class RegistryError(Exception):
    """Raised when a scheme cannot be registered."""

    pass


def _raise_for(dispatcher: StreamDispatcher, uri: str) -> None:
    error = dispatcher.last_error or StreamError("operation failed", uri=uri)
    raise error.to_os_error()


class StreamFile(io.RawIOBase):
    """
    Raw binary file object backed by a dispatcher handle.

    Args:
        dispatcher: Dispatcher owning the handle
        fh: Handle id returned by ``dispatcher.open``
        uri: Identifier the handle was opened with
        mode: Mode string used to open it
    """

    def __init__(self, dispatcher: StreamDispatcher, fh: int, uri: str, mode: str):
        super().__init__()
        self.dispatcher = dispatcher
        self.fh = fh
        self.name = uri
        self.mode = mode

    def _check(self, result):
        if result is None or result is False:
            _raise_for(self.dispatcher, self.name)
        return result

    def readable(self) -> bool:
        return "r" in self.mode or "+" in self.mode

    def writable(self) -> bool:
        return any(flag in self.mode for flag in "wax+")

    def seekable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._check(self.dispatcher.read(self.fh, len(buffer)))
        size = len(data)
        buffer[:size] = data
        return size

    def write(self, data) -> int:
        return self._check(self.dispatcher.write(self.fh, bytes(data)))

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check(self.dispatcher.seek(self.fh, offset, whence))
        return self.tell()

    def tell(self) -> int:
        return self._check(self.dispatcher.tell(self.fh))

    def truncate(self, size: Optional[int] = None) -> int:
        if size is None:
            size = self.tell()
        self._check(self.dispatcher.truncate(self.fh, size))
        return size

    def flush(self) -> None:
        if not self.closed:
            self._check(self.dispatcher.flush(self.fh))

    def fileno(self) -> int:
        handle = self.dispatcher.get_handle(self.fh)
        if handle is None:
            raise OSError(errno.EBADF, "file handle is closed", self.name)
        return handle.fileno()

    def lock(self, operation: int = LockOperation.EXCLUSIVE) -> bool:
        """Advisory lock; returns False on contention when non-blocking."""
        return self.dispatcher.lock(self.fh, operation)

    def stat(self) -> os.stat_result:
        return self._check(self.dispatcher.fstat(self.fh))

    def close(self) -> None:
        if self.closed:
            return
        try:
            super().close()
        finally:
            self.dispatcher.close(self.fh)


class StreamRegistry:
    """
    Routes scheme identifiers to the dispatcher registered for their scheme.

    Thread Safety:
    - Registration changes are locked; routing reads a snapshot
    """

    def __init__(self, logger: Optional[Logger] = None):
        self._dispatchers: Dict[str, StreamDispatcher] = {}
        self._lock = threading.RLock()
        self.logger = logger if logger is not None else Logger("schemefs.registry")

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, scheme: str, dispatcher: StreamDispatcher, replace: bool = False) -> None:
        """
        Claim a scheme for a dispatcher.

        Raises:
            RegistryError: If the scheme is invalid or already claimed
        """
        try:
            validate_scheme(scheme)
        except ValidationError as e:
            raise RegistryError(str(e))

        with self._lock:
            if scheme in self._dispatchers and not replace:
                raise RegistryError(f"Scheme already registered: {scheme}")
            self._dispatchers[scheme] = dispatcher

        self.logger.debug("Registered scheme", scheme=scheme)

    def register_locator(self, locator, dispatcher: StreamDispatcher, replace: bool = False) -> List[str]:
        """Claim every scheme the locator serves; returns the schemes."""
        schemes = list(locator.schemes())
        for scheme in schemes:
            self.register(scheme, dispatcher, replace=replace)
        return schemes

    def unregister(self, scheme: str) -> bool:
        with self._lock:
            removed = self._dispatchers.pop(scheme, None) is not None
        if removed:
            self.logger.debug("Unregistered scheme", scheme=scheme)
        return removed

    def schemes(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._dispatchers))

    def is_registered(self, uri: UriLike) -> bool:
        """Whether an identifier (or bare scheme name) is routed."""
        value = str(uri)
        try:
            scheme = ResourceUri.parse(value).scheme
        except ValueError:
            scheme = value
        with self._lock:
            return scheme in self._dispatchers

    def dispatcher_for(self, uri: UriLike) -> Optional[StreamDispatcher]:
        """Dispatcher owning the identifier's scheme, or None."""
        try:
            scheme = ResourceUri.parse(uri).scheme
        except ValueError:
            return None
        with self._lock:
            return self._dispatchers.get(scheme)

    def _route(self, uri: UriLike) -> StreamDispatcher:
        dispatcher = self.dispatcher_for(uri)
        if dispatcher is None:
            raise UnresolvedIdentifierError(f"no handler registered for {uri}", uri=str(uri)).to_os_error()
        return dispatcher

    # =========================================================================
    # Routed primitives
    # =========================================================================

    def open(
        self,
        uri: UriLike,
        mode: str = "r",
        encoding: Optional[str] = None,
        report_errors: Optional[bool] = None,
    ):
        """
        Open an identifier like the builtin ``open``.

        Binary modes return a raw StreamFile; text modes wrap it in a
        buffered TextIOWrapper.

        Raises:
            OSError: FileNotFoundError for unresolved identifiers, or the
                     native error of the failing call
        """
        uri = str(uri)
        dispatcher = self._route(uri)

        fh = dispatcher.open(uri, mode, report_errors=report_errors)
        if fh is None:
            _raise_for(dispatcher, uri)

        raw = StreamFile(dispatcher, fh, uri, mode)
        if "b" in mode:
            return raw

        if raw.readable() and raw.writable():
            buffered = io.BufferedRandom(raw, Limits.DEFAULT_READ_SIZE)
        elif raw.writable():
            buffered = io.BufferedWriter(raw, Limits.DEFAULT_READ_SIZE)
        else:
            buffered = io.BufferedReader(raw, Limits.DEFAULT_READ_SIZE)
        return io.TextIOWrapper(buffered, encoding=encoding or "utf-8")

    def stat(self, uri: UriLike, quiet: bool = False) -> os.stat_result:
        uri = str(uri)
        dispatcher = self._route(uri)
        result = dispatcher.stat(uri, quiet=quiet)
        if result is None:
            _raise_for(dispatcher, uri)
        return result

    def exists(self, uri: UriLike) -> bool:
        dispatcher = self.dispatcher_for(uri)
        return dispatcher is not None and dispatcher.stat(uri, quiet=True) is not None

    def listdir(self, uri: UriLike) -> List[str]:
        uri = str(uri)
        dispatcher = self._route(uri)
        entries = dispatcher.listdir(uri)
        if entries is None:
            _raise_for(dispatcher, uri)
        return entries

    def mkdir(self, uri: UriLike, mode: int = 0o777, recursive: bool = False) -> None:
        uri = str(uri)
        dispatcher = self._route(uri)
        if not dispatcher.mkdir(uri, mode, recursive=recursive):
            _raise_for(dispatcher, uri)

    def rmdir(self, uri: UriLike) -> None:
        uri = str(uri)
        dispatcher = self._route(uri)
        if not dispatcher.rmdir(uri):
            _raise_for(dispatcher, uri)

    def unlink(self, uri: UriLike) -> None:
        uri = str(uri)
        dispatcher = self._route(uri)
        if not dispatcher.unlink(uri):
            _raise_for(dispatcher, uri)

    def rename(self, source: UriLike, target: UriLike) -> None:
        """
        Rename within one dispatcher.

        Raises:
            OSError: EXDEV when the schemes belong to different dispatchers
        """
        source, target = str(source), str(target)
        dispatcher = self._route(source)
        if self._route(target) is not dispatcher:
            raise OSError(errno.EXDEV, "cross-dispatcher rename", source)
        if not dispatcher.rename(source, target):
            _raise_for(dispatcher, source)

    def close_all(self) -> int:
        """Close every handle of every registered dispatcher."""
        with self._lock:
            dispatchers = {id(d): d for d in self._dispatchers.values()}
        return sum(d.close_all() for d in dispatchers.values())
