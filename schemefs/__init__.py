"""SchemeFS - scheme:// identifiers over real filesystem roots.

Application code addresses files as ``scheme://relative/path``; a resource
locator chooses the real root, and the stream dispatcher performs every
filesystem primitive on the concrete path.

Usage:
    from schemefs import SchemeLocator, StreamDispatcher, StreamRegistry

    locator = SchemeLocator({"res": {"config": ["/srv/cfg"]}})
    registry = StreamRegistry()
    registry.register_locator(locator, StreamDispatcher(locator))
"""

from schemefs.core.constants import SCHEMEFS_VERSION as __version__
from schemefs.locator.static import SchemeLocator
from schemefs.registry import StreamFile, StreamRegistry
from schemefs.stream.dispatcher import StreamDispatcher
from schemefs.stream.resolver import PathResolver

__all__ = [
    "__version__",
    "PathResolver",
    "SchemeLocator",
    "StreamDispatcher",
    "StreamFile",
    "StreamRegistry",
]
