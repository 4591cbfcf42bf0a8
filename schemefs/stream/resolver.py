"""
SchemeFS Stream: Path resolution.

Turns an abstract identifier plus an intended access mode into a concrete
path. Existing resources always resolve. For WRITE and CREATE_DIRECTORY a
missing target is synthesized below its nearest existing ancestor:

    res://a/b/c.txt   (only res://a -> /srv/a exists)
    -> /srv/a/b/c.txt

The resolver never caches; the locator owns any cache.
"""

import os
from typing import List, Optional, Union

from schemefs.core.constants import AccessMode
from schemefs.core.logging import Logger
from schemefs.core.uri import ResourceUri
from schemefs.core.validators import ValidationError, validate_uri
from schemefs.locator.base import ResourceLocator


class PathResolver:
    """
    Resolves identifiers through a resource locator.

    Attributes:
        locator: Bound locator, or None (every resolution fails closed)
        allow_root_synthesis: Ask the locator for the bare ``scheme://`` root
            when walking ancestors. Off by default: the bare root is
            treated as unresolvable.
    """

    def __init__(
        self,
        locator: Optional[ResourceLocator] = None,
        allow_root_synthesis: bool = False,
        logger: Optional[Logger] = None,
    ):
        self.locator = locator
        self.allow_root_synthesis = allow_root_synthesis
        self.logger = logger if logger is not None else Logger("schemefs.resolver")

    def find(self, uri: Union[str, ResourceUri]) -> Optional[str]:
        """
        Raw locator lookup without an existence check.

        Used for the identifier itself and for each ancestor walked during
        synthesis. Primitives never call it directly; they go through
        ``resolve``.

        Returns:
            The locator's path for a known scheme, otherwise None
        """
        if self.locator is None:
            return None

        uri = str(uri)
        if not self.locator.is_stream(uri):
            return None

        return self.locator.find_resource(uri) or None

    def resolve(self, uri: Union[str, ResourceUri], mode: AccessMode = AccessMode.READ) -> Optional[str]:
        """
        Resolve an identifier for the given access mode.

        Args:
            uri: Scheme-qualified identifier
            mode: READ requires an existing path; WRITE and
                  CREATE_DIRECTORY may synthesize one

        Returns:
            Concrete path, or None when not found or not a valid identifier
        """
        try:
            parsed = ResourceUri.parse(uri)
            validate_uri(str(parsed))
        except ValueError:
            self.logger.debug("Not a scheme identifier", uri=uri)
            return None
        except ValidationError as e:
            self.logger.debug("Invalid identifier", uri=str(uri), error=str(e))
            return None

        path = self.find(parsed)
        if path and os.path.exists(path):
            return path

        if mode is AccessMode.READ:
            self.logger.debug("Identifier not found", uri=str(parsed))
            return None

        return self._synthesize(parsed)

    def _synthesize(self, uri: ResourceUri) -> Optional[str]:
        """Walk up the identifier until an existing ancestor resolves."""
        removed: List[str] = []
        current = uri

        while not current.is_root:
            removed.append(current.name)
            current = current.parent()
            if current.is_root and not self.allow_root_synthesis:
                break

            ancestor = self.find(current)
            if ancestor and os.path.exists(ancestor):
                path = os.path.join(ancestor, *reversed(removed))
                self.logger.debug("Synthesized path", uri=str(uri), path=path)
                return path

        self.logger.debug("No ancestor resolves", uri=str(uri))
        return None
