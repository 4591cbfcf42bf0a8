"""
SchemeFS Stream: Error taxonomy.

The dispatcher never raises these for expected conditions. It records the
most recent failure on ``StreamDispatcher.last_error`` and returns a failure
value; front ends (FUSE bridge, file objects) turn them into ``OSError``.
"""

import errno as errno_codes
import os
from typing import Optional

from schemefs.core.constants import ErrorCode


class StreamError(Exception):
    """Base class for stream failures."""

    default_errno = errno_codes.EIO
    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        uri: Optional[str] = None,
        errno: Optional[int] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        self.message = message
        self.uri = uri
        self.errno = errno if errno is not None else self.default_errno
        self.error_code = error_code if error_code is not None else self.default_code
        super().__init__(message)

    def to_os_error(self) -> OSError:
        """Equivalent ``OSError`` (with the errno-specific subclass)."""
        return OSError(self.errno, self.message, self.uri)


class UnresolvedIdentifierError(StreamError):
    """Scheme unknown, no locator bound, or no path/ancestor exists."""

    default_errno = errno_codes.ENOENT
    default_code = ErrorCode.NOT_FOUND


class NativeIOError(StreamError):
    """A native filesystem call failed, or the handle is not valid."""

    @classmethod
    def from_os_error(cls, exc: OSError, uri: Optional[str] = None) -> "NativeIOError":
        code = exc.errno if exc.errno is not None else errno_codes.EIO
        if code in (errno_codes.EACCES, errno_codes.EPERM):
            error_code = ErrorCode.PERMISSION_DENIED
        elif code in (errno_codes.EAGAIN, errno_codes.EWOULDBLOCK, errno_codes.EEXIST, errno_codes.ENOTEMPTY):
            error_code = ErrorCode.CONFLICT
        elif code == errno_codes.ENOENT:
            error_code = ErrorCode.NOT_FOUND
        else:
            error_code = ErrorCode.INTERNAL_ERROR
        message = exc.strerror or os.strerror(code)
        return cls(message, uri=uri, errno=code, error_code=error_code)


class InvalidOperationError(StreamError):
    """Unsupported lock operation, metadata option or stream option."""

    default_errno = errno_codes.EINVAL
    default_code = ErrorCode.INVALID_INPUT
