"""bds-updater - keep a dedicated server installation up to date.

Downloads server releases, stages them in a local cache and reconciles
them into the live server directory while keeping operator settings.

Key modules:
- core: Cache, fetcher, extractor, merge strategies, reconciler
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "bds-updater contributors"

# Re-export commonly used types
from bds_updater.core.types import (
    CacheState,
    Channel,
    Platform,
    VersionSelection,
)

__all__ = [
    "__version__",
    "__author__",
    "CacheState",
    "Channel",
    "Platform",
    "VersionSelection",
]
