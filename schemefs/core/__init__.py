"""SchemeFS Core - Shared utilities and infrastructure.

Import specific functions from submodules:
    from schemefs.core.cache import LRUCache
    from schemefs.core.config import ConfigManager
    from schemefs.core import constants
    from schemefs.core import logging
    from schemefs.core import uri
    from schemefs.core import validators
"""

# Re-export main module references for convenience
from schemefs.core import cache, config, constants, logging, uri, validators

__all__ = [
    "cache",
    "config",
    "constants",
    "logging",
    "uri",
    "validators",
]
