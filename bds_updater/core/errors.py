"""Error taxonomy for the updater core.

Every failure that ends a run derives from UpdaterError.
"""

from __future__ import annotations

from pathlib import Path


class UpdaterError(Exception):
    """Base class for terminal updater failures."""


class NetworkError(UpdaterError):
    """Raised when the metadata or archive endpoint returns non-success.

    Attributes:
        status: HTTP status code of the response
        url: Requested URL
    """

    def __init__(self, message: str | None = None, *, status: int, url: str):
        self.status = status
        self.url = url
        super().__init__(message or f"Request failed with HTTP {status}: {url}")


class CacheCorruption(UpdaterError):
    """Raised when the persisted cache file cannot be parsed.

    Attributes:
        path: Path of the unreadable cache file
    """

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Failed to load cache file, try deleting {path}")


class LicenseDeclined(UpdaterError):
    """Raised when the required license agreement is declined."""

    def __init__(self, message: str = "You must agree to the EULA and Privacy Statement to use the server"):
        super().__init__(message)


class ArchiveError(UpdaterError):
    """Raised when an archive entry cannot be extracted safely.

    Attributes:
        path: Archive member name that was rejected
    """

    def __init__(self, message: str, *, path: str | None = None):
        self.path = path
        super().__init__(message)


class ReconciliationFailure(UpdaterError):
    """Raised when one or more items of a directory failed to reconcile.

    Items that succeeded keep their effect; nothing is rolled back.

    Attributes:
        items: (name, message) pairs for every failed item
    """

    def __init__(self, items: list[tuple[str, str]]):
        self.items = list(items)
        lines = "\n".join(f"  - {name}: {message}" for name, message in self.items)
        super().__init__(f"Failed to reconcile {len(self.items)} item(s):\n{lines}")

    @property
    def names(self) -> list[str]:
        """Names of the failed items."""
        return [name for name, _ in self.items]
