"""
SchemeFS Locators: Static scheme locator.

Maps ``scheme://prefix`` to an ordered list of root directories. An identifier
resolves to the first existing candidate under the longest matching prefix:

    >>> locator = SchemeLocator()
    >>> locator.add_path("res", "config", ["/srv/cfg", "/opt/defaults/cfg"])
    >>> locator.find_resource("res://config/app.yaml")
    '/srv/cfg/app.yaml'

Successful lookups are kept in an LRU cache until ``clear_cache`` drops them.
Misses are never cached, so a newly created file is visible immediately.
"""

import os
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from schemefs.core.cache import MISSING, CacheConfig, LRUCache
from schemefs.core.constants import SCHEME_SEPARATOR
from schemefs.core.logging import Logger
from schemefs.core.uri import ResourceUri
from schemefs.core.validators import normalize_scheme_mapping, validate_root, validate_scheme
from schemefs.locator.base import BaseLocator


class SchemeLocator(BaseLocator):
    """Prefix-to-roots locator with a resolution cache.

    Attributes:
        mappings: scheme -> {prefix -> [roots]}
        cache: Resolution cache keyed by identifier string
    """

    def __init__(
        self,
        mappings: Optional[Dict[str, Any]] = None,
        cache_config: Optional[CacheConfig] = None,
        logger: Optional[Logger] = None,
    ):
        """
        Initialize the locator.

        Args:
            mappings: Optional ``schemes`` configuration section
            cache_config: Resolution cache configuration
            logger: Logger (``schemefs.locator`` when None)
        """
        self.mappings: Dict[str, Dict[str, List[str]]] = {}
        self.cache = LRUCache(cache_config)
        self.logger = logger if logger is not None else Logger("schemefs.locator")
        self._lock = threading.RLock()

        for scheme, mapping in (mappings or {}).items():
            for prefix, roots in normalize_scheme_mapping(mapping).items():
                self.add_path(scheme, prefix, roots)

    @classmethod
    def from_config(cls, schemes: Dict[str, Any], cache: Optional[Dict[str, Any]] = None) -> "SchemeLocator":
        """Build a locator from the ``schemes`` and ``cache`` config sections."""
        return cls(mappings=schemes, cache_config=CacheConfig.from_dict(cache or {}))

    # =========================================================================
    # Registration
    # =========================================================================

    def add_path(self, scheme: str, prefix: str, roots: Sequence[str], prepend: bool = False) -> None:
        """
        Register roots for ``scheme://prefix``.

        Args:
            scheme: Scheme name
            prefix: Relative prefix ("" for the whole scheme)
            roots: Root directories, searched in order
            prepend: Search the new roots before existing ones

        Raises:
            ValidationError: If scheme or a root is invalid
        """
        validate_scheme(scheme)
        if isinstance(roots, str):
            roots = [roots]
        for root in roots:
            validate_root(root)

        prefix = prefix.strip("/")
        normalized = [os.path.abspath(os.path.expanduser(root)) for root in roots]

        with self._lock:
            existing = self.mappings.setdefault(scheme, {}).setdefault(prefix, [])
            if prepend:
                existing[:0] = normalized
            else:
                existing.extend(normalized)
            # New roots can change any answer within the scheme
            self.cache.invalidate_prefix(f"{scheme}{SCHEME_SEPARATOR}")

        self.logger.debug("Registered roots", scheme=scheme, prefix=prefix, roots=normalized)

    def remove_scheme(self, scheme: str) -> bool:
        """Forget a scheme and its cached resolutions."""
        with self._lock:
            removed = self.mappings.pop(scheme, None) is not None
            self.cache.invalidate_prefix(f"{scheme}{SCHEME_SEPARATOR}")
        return removed

    def schemes(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self.mappings)

    # =========================================================================
    # Locator contract
    # =========================================================================

    def is_stream(self, uri: str) -> bool:
        try:
            scheme = ResourceUri.parse(uri).scheme
        except ValueError:
            return False
        with self._lock:
            return scheme in self.mappings

    def find_resource(self, uri: str) -> Optional[str]:
        """
        Resolve an identifier to the first existing candidate path.

        Args:
            uri: Scheme-qualified identifier

        Returns:
            Existing concrete path, or None
        """
        key = str(uri)
        cached = self.cache.get(key)
        if cached is not MISSING:
            return cached

        try:
            parsed = ResourceUri.parse(uri)
        except ValueError:
            return None

        for candidate in self.candidates(parsed):
            if os.path.exists(candidate):
                self.cache.set(key, candidate)
                return candidate

        return None

    def find_all(self, uri: str) -> List[str]:
        """Every existing candidate for the identifier, in search order."""
        try:
            parsed = ResourceUri.parse(uri)
        except ValueError:
            return []
        return [candidate for candidate in self.candidates(parsed) if os.path.exists(candidate)]

    def candidates(self, uri: ResourceUri) -> List[str]:
        """Candidate paths for an identifier, longest matching prefix first."""
        with self._lock:
            prefixes = dict(self.mappings.get(uri.scheme, {}))

        target = uri.target.strip("/")
        results = []
        for prefix in sorted(prefixes, key=len, reverse=True):
            if prefix == "":
                remainder = target
            elif target == prefix:
                remainder = ""
            elif target.startswith(prefix + "/"):
                remainder = target[len(prefix) + 1:]
            else:
                continue

            for root in prefixes[prefix]:
                if not remainder:
                    results.append(root)
                    continue
                candidate = os.path.normpath(os.path.join(root, remainder))
                # Candidates never leave their root
                if os.path.commonpath([root, candidate]) != root:
                    continue
                results.append(candidate)

        return results

    def clear_cache(self, uri: Optional[str] = None) -> None:
        """
        Drop cached resolutions.

        Args:
            uri: Identifier whose entry and descendants are dropped;
                 the whole cache when None
        """
        if uri is None:
            self.cache.clear()
            self.logger.debug("Locator cache cleared")
            return

        key = str(uri).rstrip("/")
        self.cache.invalidate(key)
        self.cache.invalidate_prefix(key + "/")
        self.logger.debug("Locator cache invalidated", uri=key)
