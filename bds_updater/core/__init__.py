"""Core functionality for bds_updater.

This module provides the package reconciliation engine:
- Version cache and staged version stamp
- Archive fetching and streaming extraction
- Merge strategies for operator-edited config files
- Tree reconciliation with progress reporting
"""

from bds_updater.core.errors import (
    ArchiveError,
    CacheCorruption,
    LicenseDeclined,
    NetworkError,
    ReconciliationFailure,
    UpdaterError,
)
from bds_updater.core.merge import merge_permissions, merge_properties
from bds_updater.core.reconciler import DEFAULT_POLICIES, PathPolicy, TreeReconciler
from bds_updater.core.updater import ServerUpdater
from bds_updater.core.version_cache import VersionCache

__all__ = [
    # Errors
    "UpdaterError",
    "NetworkError",
    "CacheCorruption",
    "LicenseDeclined",
    "ArchiveError",
    "ReconciliationFailure",
    # Engine
    "VersionCache",
    "PathPolicy",
    "DEFAULT_POLICIES",
    "TreeReconciler",
    "ServerUpdater",
    "merge_properties",
    "merge_permissions",
]
