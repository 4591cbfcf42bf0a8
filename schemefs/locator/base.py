"""
SchemeFS Locators: Base contract.

A resource locator maps scheme-qualified identifiers to concrete paths. The
stream layer only consumes this contract; search order, overlays and caching
are the locator's business.
"""

from abc import ABC, abstractmethod
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class ResourceLocator(Protocol):
    """Structural contract consumed by the path resolver and dispatcher."""

    def is_stream(self, uri: str) -> bool:
        """Whether the identifier's scheme is known."""
        ...

    def find_resource(self, uri: str) -> Optional[str]:
        """Best concrete path for the identifier, or None."""
        ...

    def clear_cache(self, uri: Optional[str] = None) -> None:
        """Drop cached resolutions for the identifier (all when None)."""
        ...


class BaseLocator(ABC):
    """Convenience base class for locator implementations."""

    @abstractmethod
    def is_stream(self, uri: str) -> bool:
        pass

    @abstractmethod
    def find_resource(self, uri: str) -> Optional[str]:
        pass

    def clear_cache(self, uri: Optional[str] = None) -> None:
        """Locators without a cache have nothing to drop."""
        return None

    def schemes(self):
        """Schemes served by this locator (empty when unknown)."""
        return ()
