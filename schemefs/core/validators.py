"""
SchemeFS Core: Input Validators.

This module provides validation functions for identifiers, schemes, root
directories and the configuration tree.
"""
import re
from typing import Any, Dict, List, Union

from schemefs.core.constants import SCHEME_SEPARATOR, ConfigKey, ErrorCode, Limits

# RFC 3986 scheme syntax
SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ValidationError(Exception):
    """Base exception for validation errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        """Initialize ValidationError.

        Args:
            message: Error message
            error_code: Associated error code
        """
        super().__init__(message)
        self.error_code = error_code


def validate_scheme(scheme: str) -> bool:
    """Validate a scheme name.

    Args:
        scheme: Scheme without the ``://`` separator

    Returns:
        True if valid

    Raises:
        ValidationError: If scheme is invalid
    """
    if not isinstance(scheme, str):
        raise ValidationError(f"Scheme must be string, got {type(scheme)}")

    if not scheme:
        raise ValidationError("Scheme cannot be empty")

    if len(scheme) > Limits.MAX_SCHEME_LENGTH:
        raise ValidationError(f"Scheme exceeds maximum length ({Limits.MAX_SCHEME_LENGTH})")

    if not SCHEME_PATTERN.match(scheme):
        raise ValidationError(f"Invalid scheme: {scheme}")

    return True


def validate_uri(uri: str) -> bool:
    """Validate an abstract identifier of the form ``scheme://relative/path``.

    Args:
        uri: Identifier string

    Returns:
        True if valid

    Raises:
        ValidationError: If identifier is invalid
    """
    if not isinstance(uri, str):
        raise ValidationError(f"Identifier must be string, got {type(uri)}")

    if len(uri) > Limits.MAX_URI_LENGTH:
        raise ValidationError(f"Identifier exceeds maximum length ({Limits.MAX_URI_LENGTH})")

    scheme, sep, target = uri.partition(SCHEME_SEPARATOR)
    if not sep:
        raise ValidationError(f"Identifier must contain '{SCHEME_SEPARATOR}': {uri}")

    validate_scheme(scheme)

    if "\0" in target:
        raise ValidationError("Identifier contains null bytes")

    if target:
        for segment in target.split("/"):
            if segment in (".", ".."):
                raise ValidationError(f"Relative segment not allowed: {uri}")
            if len(segment) > Limits.MAX_SEGMENT_LENGTH:
                raise ValidationError(
                    f"Segment exceeds maximum length ({Limits.MAX_SEGMENT_LENGTH}): {segment[:32]}..."
                )

    return True


def validate_root(path: str) -> bool:
    """Validate a root directory path used by a scheme mapping.

    Args:
        path: Filesystem path

    Returns:
        True if valid

    Raises:
        ValidationError: If path is invalid
    """
    if not isinstance(path, str):
        raise ValidationError(f"Root must be string, got {type(path)}")

    if not path:
        raise ValidationError("Root cannot be empty")

    if "\0" in path:
        raise ValidationError("Root contains null bytes")

    if any(ord(c) < 32 for c in path):
        raise ValidationError("Root contains control characters")

    return True


def normalize_scheme_mapping(mapping: Union[str, List[str], Dict[str, Any]]) -> Dict[str, List[str]]:
    """Normalize one scheme's configuration to ``{prefix: [roots]}``.

    A bare string or list maps the whole scheme (prefix ``""``).

    Raises:
        ValidationError: If the mapping has an unsupported shape
    """
    if isinstance(mapping, str):
        return {"": [mapping]}
    if isinstance(mapping, list):
        return {"": list(mapping)}
    if isinstance(mapping, dict):
        normalized = {}
        for prefix, roots in mapping.items():
            if not isinstance(prefix, str):
                raise ValidationError(f"Prefix must be string: {prefix}")
            if isinstance(roots, str):
                roots = [roots]
            if not isinstance(roots, list):
                raise ValidationError(f"Roots for prefix '{prefix}' must be a list")
            normalized[prefix.strip("/")] = list(roots)
        return normalized

    raise ValidationError(f"Scheme mapping must be string, list or dict, got {type(mapping)}")


def validate_schemes_config(schemes: Dict[str, Any]) -> bool:
    """Validate the ``schemes`` section.

    Args:
        schemes: Mapping of scheme name to roots

    Returns:
        True if valid

    Raises:
        ValidationError: If any scheme or root is invalid
    """
    if not isinstance(schemes, dict):
        raise ValidationError("Schemes must be a dictionary")

    for scheme, mapping in schemes.items():
        validate_scheme(scheme)
        for prefix, roots in normalize_scheme_mapping(mapping).items():
            if not roots:
                raise ValidationError(f"Scheme '{scheme}' prefix '{prefix}' has no roots")
            for root in roots:
                try:
                    validate_root(root)
                except ValidationError as e:
                    raise ValidationError(f"Invalid root for '{scheme}://{prefix}': {e}")

    return True


def validate_cache_config(cache: Dict[str, Any]) -> bool:
    """Validate cache configuration.

    Args:
        cache: Cache configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If cache config is invalid
    """
    if not isinstance(cache, dict):
        raise ValidationError("Cache configuration must be a dictionary")

    # Check for unknown fields
    valid_fields = {
        ConfigKey.CACHE_ENABLED,
        ConfigKey.CACHE_MAX_ENTRIES,
        ConfigKey.CACHE_TTL,
    }
    unknown_fields = set(cache.keys()) - valid_fields
    if unknown_fields:
        raise ValidationError(f"Unknown cache configuration fields: {', '.join(sorted(unknown_fields))}")

    if ConfigKey.CACHE_ENABLED in cache:
        enabled = cache[ConfigKey.CACHE_ENABLED]
        if not isinstance(enabled, bool):
            raise ValidationError(f"Cache enabled must be boolean: {enabled}")

    if ConfigKey.CACHE_MAX_ENTRIES in cache:
        entries = cache[ConfigKey.CACHE_MAX_ENTRIES]
        if isinstance(entries, bool) or not isinstance(entries, int) or entries <= 0:
            raise ValidationError(f"Cache max_entries must be positive integer: {entries}")

    if ConfigKey.CACHE_TTL in cache:
        ttl = cache[ConfigKey.CACHE_TTL]
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0:
            raise ValidationError(f"Cache TTL must be positive number: {ttl}")

    return True


def validate_stream_config(stream: Dict[str, Any]) -> bool:
    """Validate the ``stream`` section (boolean flags only)."""
    if not isinstance(stream, dict):
        raise ValidationError("Stream configuration must be a dictionary")

    for key in (ConfigKey.REPORT_ERRORS, ConfigKey.ALLOW_ROOT_SYNTHESIS):
        if key in stream and not isinstance(stream[key], bool):
            raise ValidationError(f"Stream {key} must be boolean: {stream[key]}")

    unknown_fields = set(stream.keys()) - {ConfigKey.REPORT_ERRORS, ConfigKey.ALLOW_ROOT_SYNTHESIS}
    if unknown_fields:
        raise ValidationError(f"Unknown stream configuration fields: {', '.join(sorted(unknown_fields))}")

    return True


def validate_logging_config(logging_config: Dict[str, Any]) -> bool:
    """Validate the ``logging`` section."""
    if not isinstance(logging_config, dict):
        raise ValidationError("Logging configuration must be a dictionary")

    level = logging_config.get(ConfigKey.LOG_LEVEL)
    if level is not None and str(level).upper() not in VALID_LOG_LEVELS:
        raise ValidationError(f"Invalid log level: {level}")

    log_file = logging_config.get(ConfigKey.LOG_FILE)
    if log_file is not None and not isinstance(log_file, str):
        raise ValidationError(f"Log file must be string: {log_file}")

    return True


def validate_config(config: Dict[str, Any]) -> bool:
    """Validate SchemeFS configuration structure.

    Accepts either the full document (with a top-level ``schemefs`` key) or
    the inner section.

    Args:
        config: Configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ValidationError("Configuration must be a dictionary")

    if ConfigKey.ROOT in config:
        config = config[ConfigKey.ROOT]
        if not isinstance(config, dict):
            raise ValidationError(f"'{ConfigKey.ROOT}' section must be a dictionary")

    if ConfigKey.SCHEMES in config:
        validate_schemes_config(config[ConfigKey.SCHEMES])

    if ConfigKey.CACHE in config:
        validate_cache_config(config[ConfigKey.CACHE])

    if ConfigKey.STREAM in config:
        validate_stream_config(config[ConfigKey.STREAM])

    if ConfigKey.LOGGING in config:
        validate_logging_config(config[ConfigKey.LOGGING])

    return True


def validate_permissions(mode: Union[int, str]) -> bool:
    """Validate file permissions mode.

    Args:
        mode: Permission mode (octal int or string)

    Returns:
        True if valid

    Raises:
        ValidationError: If mode is invalid
    """
    try:
        if isinstance(mode, str):
            mode_int = int(mode, 8)
        else:
            mode_int = int(mode)
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid permission mode (must be octal): {mode}")

    # Permission bits plus setuid/setgid/sticky
    if mode_int < 0 or mode_int > 0o7777:
        raise ValidationError(f"Permission mode must be in range 0-7777, got: {mode_int:o}")

    return True
