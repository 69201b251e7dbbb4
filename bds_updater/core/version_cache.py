"""Persistent installer state and staged-archive bookkeeping.

Layout under the server directory:

    {server}/
    └── .launcher-cache/
        ├── cache.json            # {"license": bool, "version": str}
        └── _bedrock_server/      # Staging directory (extracted archive)
            └── version.txt       # Version stamp of the staged archive

The installed version in cache.json tracks what is live; the version
stamp tracks what is staged. They are updated independently.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import structlog
from pydantic import ValidationError

from bds_updater.core.config import AppConfig
from bds_updater.core.errors import CacheCorruption
from bds_updater.core.types import CacheState
from bds_updater.core.utils import compare_versions

logger = structlog.get_logger()


class VersionCache:
    """Write-through persisted state for one server directory.

    Args:
        server_dir: Live installation directory
        config: Optional application configuration
    """

    def __init__(self, server_dir: Path, config: AppConfig | None = None) -> None:
        self.server_dir = Path(server_dir).resolve()
        self.config = config or AppConfig()
        self._state: CacheState | None = None

    @property
    def cache_dir(self) -> Path:
        """Hidden cache directory."""
        return self.server_dir / self.config.cache_dir_name

    @property
    def cache_file(self) -> Path:
        """Persisted state file."""
        return self.cache_dir / self.config.cache_file_name

    @property
    def staging_dir(self) -> Path:
        """Directory holding the extracted archive."""
        return self.cache_dir / self.config.staging_dir_name

    @property
    def version_stamp(self) -> Path:
        """Version stamp of the staged archive."""
        return self.staging_dir / self.config.version_stamp_name

    @property
    def state(self) -> CacheState:
        """Loaded state, reading it from disk on first access."""
        if self._state is None:
            return self.load()
        return self._state

    def init(self) -> None:
        """Ensure the cache directory exists."""
        if not self.cache_dir.exists():
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info("cache_dir_created", path=str(self.cache_dir))

    def load(self) -> CacheState:
        """Read persisted state, writing the default if none exists.

        Returns:
            Loaded state

        Raises:
            CacheCorruption: If the cache file cannot be parsed
        """
        if not self.cache_file.exists():
            self._state = CacheState()
            self._save()
            logger.debug("cache_initialized", path=str(self.cache_file))
            return self._state

        try:
            raw = json.loads(self.cache_file.read_text(encoding="utf-8"))
            self._state = CacheState.model_validate(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.debug("cache_load_failed", path=str(self.cache_file), error=str(e))
            raise CacheCorruption(self.cache_file) from e

        logger.debug("cache_loaded", version=self._state.version, license=self._state.license)
        return self._state

    def _save(self) -> None:
        assert self._state is not None
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.cache_file.write_text(
            json.dumps(self._state.model_dump(mode="json"), indent=2),
            encoding="utf-8",
        )

    def get_license(self) -> bool:
        return self.state.license

    def set_license(self, accepted: bool) -> None:
        self.state.license = accepted
        self._save()

    def get_version(self) -> str:
        return self.state.version

    def set_version(self, version: str) -> None:
        self.state.version = version
        self._save()
        logger.debug("installed_version_saved", version=version)

    def should_update(self, candidate: str) -> bool:
        """Check if a candidate version is newer than the installed one.

        Args:
            candidate: Version to compare against the installed version

        Returns:
            True if candidate is strictly greater
        """
        return compare_versions(candidate, self.get_version()) > 0

    def is_version_cached(self, version: str) -> bool:
        """Check if the staging directory already holds a version.

        Args:
            version: Version to look for

        Returns:
            True if the stamp exists and its trimmed content equals version
        """
        if not self.version_stamp.is_file():
            return False
        return self.version_stamp.read_text(encoding="utf-8").strip() == version

    def mark_version_downloaded(self, version: str) -> None:
        """Record the version currently sitting in the staging directory."""
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        self.version_stamp.write_text(f"{version}\n", encoding="utf-8")
        logger.debug("version_stamp_written", version=version)

    def clear_cache(self) -> None:
        """Remove the staging directory if present."""
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir)
            logger.debug("staging_cleared", path=str(self.staging_dir))
