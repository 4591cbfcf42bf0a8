"""
SchemeFS Core: Constants and Type Definitions

This module provides system-wide constants, error codes, stream flags and
type definitions shared by the resolver, dispatcher and front ends.
"""
import fcntl
from enum import Enum, IntEnum

# Version information
SCHEMEFS_VERSION = "1.0.0"

# Identifier separator between scheme and relative path
SCHEME_SEPARATOR = "://"
SEGMENT_SEPARATOR = "/"


# Error codes (0-9 range)
class ErrorCode(IntEnum):
    """Standardized error codes for SchemeFS operations."""

    SUCCESS = 0  # Operation completed successfully
    INVALID_INPUT = 1  # Bad identifier, invalid configuration
    NOT_FOUND = 2  # Identifier doesn't resolve
    PERMISSION_DENIED = 3  # Insufficient permissions
    CONFLICT = 4  # Resource conflict (locked, exists)
    DEPENDENCY_ERROR = 5  # Missing dependency (FUSE)
    INTERNAL_ERROR = 6  # Native call failed unexpectedly
    TIMEOUT = 7  # Operation timed out


class AccessMode(Enum):
    """Intended access when resolving an identifier.

    READ never synthesizes a path. WRITE and CREATE_DIRECTORY may return a
    path that does not exist yet, below the nearest existing ancestor.
    """

    READ = "read"
    WRITE = "write"
    CREATE_DIRECTORY = "directory"


# Open modes that never modify the target
READ_ONLY_MODES = frozenset({"r", "rb", "rt"})


class LockOperation(IntEnum):
    """Advisory lock operations accepted by the lock primitive."""

    SHARED = fcntl.LOCK_SH
    EXCLUSIVE = fcntl.LOCK_EX
    UNLOCK = fcntl.LOCK_UN
    NON_BLOCKING = fcntl.LOCK_NB


class MetadataOption(IntEnum):
    """Metadata changes accepted by the metadata primitive."""

    TOUCH = 1
    OWNER_NAME = 2
    OWNER = 3
    GROUP_NAME = 4
    GROUP = 5
    ACCESS = 6


class StreamOption(IntEnum):
    """Per-handle stream options."""

    BLOCKING = 1
    READ_TIMEOUT = 4
    WRITE_BUFFER = 3


# Resource limits and defaults
class Limits:
    """System resource limits and default values."""

    # Path limits
    MAX_URI_LENGTH = 4096
    MAX_SEGMENT_LENGTH = 255
    MAX_SCHEME_LENGTH = 64

    # Locator cache
    LOCATOR_CACHE_ENTRIES = 10000
    LOCATOR_CACHE_TTL = 60  # seconds

    # Read chunk used by the file object wrapper
    DEFAULT_READ_SIZE = 8192


# Configuration keys
class ConfigKey:
    """Configuration key constants."""

    # Top-level keys
    ROOT = "schemefs"
    SCHEMES = "schemes"
    CACHE = "cache"
    STREAM = "stream"
    LOGGING = "logging"

    # Cache configuration
    CACHE_ENABLED = "enabled"
    CACHE_MAX_ENTRIES = "max_entries"
    CACHE_TTL = "ttl_seconds"

    # Stream configuration
    REPORT_ERRORS = "report_errors"
    ALLOW_ROOT_SYNTHESIS = "allow_root_synthesis"

    # Logging configuration
    LOG_LEVEL = "level"
    LOG_FILE = "file"


# Default configuration values
DEFAULT_CONFIG = {
    ConfigKey.SCHEMES: {},
    ConfigKey.CACHE: {
        ConfigKey.CACHE_ENABLED: True,
        ConfigKey.CACHE_MAX_ENTRIES: Limits.LOCATOR_CACHE_ENTRIES,
        ConfigKey.CACHE_TTL: Limits.LOCATOR_CACHE_TTL,
    },
    ConfigKey.STREAM: {
        ConfigKey.REPORT_ERRORS: False,
        ConfigKey.ALLOW_ROOT_SYNTHESIS: False,
    },
    ConfigKey.LOGGING: {
        ConfigKey.LOG_LEVEL: "INFO",
        ConfigKey.LOG_FILE: None,
    },
}
