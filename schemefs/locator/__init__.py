"""SchemeFS Locators.

A locator decides which real path backs an identifier:
- ResourceLocator: the contract consumed by the resolver
- BaseLocator: abstract base for implementations
- SchemeLocator: static prefix -> roots mapping with a resolution cache
"""

from .base import BaseLocator, ResourceLocator
from .static import SchemeLocator

__all__ = [
    "ResourceLocator",
    "BaseLocator",
    "SchemeLocator",
]
