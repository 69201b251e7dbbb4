"""Core type definitions for bds_updater."""

from __future__ import annotations

import sys
from enum import Enum, StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Platform(StrEnum):
    """Archive/variant naming families."""
    WINDOWS = "windows"
    LINUX = "linux"

    @classmethod
    def current(cls) -> Platform:
        """Platform of the running interpreter."""
        return cls.WINDOWS if sys.platform == "win32" else cls.LINUX


class Channel(StrEnum):
    """Release tracks."""
    STABLE = "stable"
    PREVIEW = "preview"


class ReconciliationAction(StrEnum):
    """Action taken for one staged entry during a reconciliation run."""
    REPLACE = "REPLACE"
    KEEP = "KEEP"
    MERGE = "MERGE"


class ItemStatus(Enum):
    """Display status of a reconciled item."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    error = "error"


class SwitchReason(StrEnum):
    """Why a version change happened."""
    UPDATE = "updated"
    SWITCH = "switched"


class CacheState(BaseModel):
    """Persisted installer state.

    Missing fields fall back to their defaults so older cache files keep
    loading after new fields are added.
    """
    license: bool = Field(default=False, description="License accepted")
    version: str = Field(default="0.0.0", description="Installed version")

    model_config = ConfigDict(extra="allow")


class VersionList(BaseModel):
    """Available versions for one platform."""
    stable: str = Field(..., description="Latest stable version")
    preview: str = Field(..., description="Latest preview version")
    versions: list[str] = Field(default_factory=list, description="Stable versions, oldest first")
    preview_versions: list[str] = Field(default_factory=list, description="Preview versions, oldest first")

    model_config = ConfigDict(extra="allow")

    def for_channel(self, channel: Channel) -> list[str]:
        """Versions published on a channel."""
        return self.preview_versions if channel == Channel.PREVIEW else self.versions

    def latest(self, channel: Channel) -> str:
        """Latest version published on a channel."""
        return self.preview if channel == Channel.PREVIEW else self.stable


class ServerBuildInfo(BaseModel):
    """Remote metadata document keyed by platform."""
    windows: VersionList
    linux: VersionList

    model_config = ConfigDict(extra="allow")

    def for_platform(self, platform: Platform) -> VersionList:
        """Version list for a platform."""
        return self.windows if platform == Platform.WINDOWS else self.linux


class VersionSelection(BaseModel):
    """A specific archive to fetch."""
    version: str = Field(..., description="Version string")
    is_preview: bool = Field(default=False, description="Preview channel archive")

    @property
    def channel(self) -> Channel:
        return Channel.PREVIEW if self.is_preview else Channel.STABLE

    def display(self) -> str:
        """Version with a preview marker when relevant."""
        if self.is_preview:
            return f"{self.version} (preview)"
        return self.version


class SwitchResult(BaseModel):
    """Outcome of a successful version change."""
    old_version: str
    new_version: str
    reason: SwitchReason
    is_preview: bool = False
    downloaded: bool = True
