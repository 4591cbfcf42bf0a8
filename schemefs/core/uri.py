"""
SchemeFS Core: Abstract identifier handling.

Identifiers have the form ``scheme://relative/path``. The relative part is a
``/``-separated list of segments and may be empty (the bare scheme root).

Example:
    >>> uri = ResourceUri.parse("res://config/app.yaml")
    >>> uri.segments
    ('config', 'app.yaml')
    >>> str(uri.parent())
    'res://config'
"""
from dataclasses import dataclass
from typing import Tuple, Union

from schemefs.core.constants import SCHEME_SEPARATOR, SEGMENT_SEPARATOR


@dataclass(frozen=True)
class ResourceUri:
    """Immutable scheme-qualified identifier."""

    scheme: str
    target: str = ""

    @classmethod
    def parse(cls, uri: Union[str, "ResourceUri"]) -> "ResourceUri":
        """Parse an identifier string.

        Args:
            uri: Identifier string or an already parsed ResourceUri

        Returns:
            Parsed identifier

        Raises:
            ValueError: If the string has no ``scheme://`` prefix
        """
        if isinstance(uri, ResourceUri):
            return uri

        scheme, sep, target = uri.partition(SCHEME_SEPARATOR)
        if not sep or not scheme:
            raise ValueError(f"Not a scheme identifier: {uri!r}")
        return cls(scheme=scheme, target=target)

    @property
    def segments(self) -> Tuple[str, ...]:
        """Ordered relative path segments (empty for the bare root)."""
        if self.target == "":
            return ()
        return tuple(self.target.split(SEGMENT_SEPARATOR))

    @property
    def is_root(self) -> bool:
        return self.target == ""

    @property
    def name(self) -> str:
        """Last segment, or empty string for the bare root."""
        return self.segments[-1] if self.segments else ""

    def parent(self) -> "ResourceUri":
        """Identifier with the last segment removed.

        The parent of the bare root is the bare root.
        """
        return ResourceUri(self.scheme, SEGMENT_SEPARATOR.join(self.segments[:-1]))

    def __str__(self) -> str:
        return f"{self.scheme}{SCHEME_SEPARATOR}{self.target}"

