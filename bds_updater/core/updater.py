"""Update orchestration for one server directory.

Flow of ``switch_version``:

1. License check (LicenseDeclined aborts before any download)
2. Fetch + extract the archive into staging unless the staged version
   stamp already matches
3. Reconcile staging into the live directory
4. Set the execute bit on the server binary (non-Windows)
5. Commit the installed version, then clear staging

The installed version is only written after step 3 succeeds.
"""

from __future__ import annotations

import asyncio
import os
import stat
from collections.abc import Callable, Sequence
from pathlib import Path

import structlog
from rich.console import Console

from bds_updater.core.config import AppConfig
from bds_updater.core.errors import LicenseDeclined
from bds_updater.core.fetcher import PackageFetcher
from bds_updater.core.progress import DownloadProgress, ProgressReporter
from bds_updater.core.reconciler import DEFAULT_POLICIES, PathPolicy, ReconcileSummary, TreeReconciler
from bds_updater.core.types import (
    Channel,
    Platform,
    SwitchReason,
    SwitchResult,
    VersionList,
    VersionSelection,
)
from bds_updater.core.version_cache import VersionCache

logger = structlog.get_logger()

InstalledHook = Callable[[Path, Path], None]


def ensure_executable(path: Path) -> bool:
    """Add execute permission bits to a file.

    Args:
        path: File to update

    Returns:
        True if the mode changed
    """
    if not path.is_file():
        return False
    mode = path.stat().st_mode
    wanted = mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
    if wanted == mode:
        return False
    os.chmod(path, wanted)
    return True


class ServerUpdater:
    """Keeps a server directory at a chosen version.

    Args:
        server_dir: Live installation directory
        config: Optional application configuration
        platform: Archive platform family, the running platform if None
        fetcher: Optional fetcher, one is built from config if None
        console: Console for progress output
        license_prompt: Asked when the license has not been accepted yet
        on_installed: Called with (server_dir, executable) after a
            successful install, e.g. to launch the server
        policies: Reconciliation policy table
        tick_interval: Spinner interval for the reconcile display
    """

    def __init__(
        self,
        server_dir: Path,
        config: AppConfig | None = None,
        platform: Platform | None = None,
        fetcher: PackageFetcher | None = None,
        console: Console | None = None,
        license_prompt: Callable[[], bool] | None = None,
        on_installed: InstalledHook | None = None,
        policies: Sequence[PathPolicy] = DEFAULT_POLICIES,
        tick_interval: float | None = 0.2,
    ):
        self.server_dir = Path(server_dir).resolve()
        self.config = config or AppConfig()
        self.platform = platform or Platform.current()
        self.fetcher = fetcher or PackageFetcher(self.config, platform=self.platform)
        self.console = console or Console()
        self.license_prompt = license_prompt
        self.on_installed = on_installed
        self.policies = tuple(policies)
        self.tick_interval = tick_interval
        self.version_list: VersionList | None = None

        self.cache = VersionCache(self.server_dir, self.config)
        self.cache.init()

    @property
    def executable(self) -> Path:
        """Server binary inside the live directory."""
        return self.server_dir / self.config.executable_name(self.platform)

    def fetch_version_list(self) -> VersionList:
        """Fetch and remember the version list for this platform."""
        build_info = self.fetcher.fetch_build_info()
        self.version_list = build_info.for_platform(self.platform)
        return self.version_list

    def check_update(self) -> tuple[bool, str]:
        """Check whether the latest stable release is newer than installed.

        Returns:
            (update available, latest stable version)
        """
        latest = self.fetch_version_list().stable
        available = self.cache.should_update(latest)
        logger.info("update_checked", installed=self.cache.get_version(), latest=latest, available=available)
        return available, latest

    def resolve_selection(self, channel: Channel, version: str | None = None) -> VersionSelection:
        """Turn a channel and optional version into a selection.

        Args:
            channel: Release channel
            version: Explicit version, or None for the channel's latest

        Returns:
            Version selection

        Raises:
            ValueError: If the version is not published on the channel
        """
        version_list = self.version_list or self.fetch_version_list()
        if version is None:
            version = version_list.latest(channel)
        elif version not in version_list.for_channel(channel):
            raise ValueError(f"Version {version} not found on the {channel.value} channel")
        return VersionSelection(version=version, is_preview=channel == Channel.PREVIEW)

    def check_license(self, accepted: bool | None = None) -> None:
        """Make sure the license has been accepted.

        Args:
            accepted: Answer supplied by the caller; the license prompt is
                asked when None

        Raises:
            LicenseDeclined: If the license is not accepted
        """
        if self.cache.get_license():
            return
        if accepted is None:
            accepted = self.license_prompt() if self.license_prompt else False
        if not accepted:
            raise LicenseDeclined()
        self.cache.set_license(True)

    def stage(self, selection: VersionSelection) -> bool:
        """Populate the staging directory with a version.

        Returns:
            True if the archive was downloaded, False if already staged
        """
        if self.cache.is_version_cached(selection.version):
            logger.info("archive_cached", version=selection.version)
            return False

        self.cache.clear_cache()
        with DownloadProgress(self.console, f"Downloading {selection.display()}") as progress:
            self.fetcher.download_and_extract(
                selection,
                self.cache.staging_dir,
                on_progress=progress.update,
                on_total=progress.set_total,
            )
        self.cache.mark_version_downloaded(selection.version)
        return True

    async def reconcile(self) -> ReconcileSummary:
        """Reconcile the staging directory into the live directory."""
        reconciler = TreeReconciler(
            self.cache.staging_dir,
            self.server_dir,
            self.policies,
            reporter=ProgressReporter(self.console),
            skip_names=(self.config.version_stamp_name,),
            tick_interval=self.tick_interval,
        )
        return await reconciler.reconcile()

    def switch_version(
        self,
        selection: VersionSelection,
        reason: SwitchReason = SwitchReason.SWITCH,
        license_accepted: bool | None = None,
    ) -> SwitchResult:
        """Install a version into the live directory.

        Args:
            selection: Version to install
            reason: Reported reason for the change
            license_accepted: License answer, prompting if None

        Returns:
            Summary of the change

        Raises:
            LicenseDeclined: If the license is not accepted
            NetworkError: If the archive cannot be fetched
            ReconciliationFailure: If any item failed to reconcile
        """
        self.check_license(license_accepted)
        logger.info("install_started", version=selection.version, preview=selection.is_preview)

        downloaded = self.stage(selection)
        asyncio.run(self.reconcile())

        if self.platform != Platform.WINDOWS and ensure_executable(self.executable):
            logger.debug("executable_bit_set", path=str(self.executable))

        old_version = self.cache.get_version()
        self.cache.set_version(selection.version)
        self.cache.clear_cache()

        logger.info("install_finished", old=old_version, new=selection.version, reason=reason.value)

        if self.on_installed:
            self.on_installed(self.server_dir, self.executable)

        return SwitchResult(
            old_version=old_version,
            new_version=selection.version,
            reason=reason,
            is_preview=selection.is_preview,
            downloaded=downloaded,
        )

    def update(self, license_accepted: bool | None = None) -> SwitchResult | None:
        """Install the latest stable release if it is newer.

        Returns:
            Summary of the change, or None if already up to date
        """
        available, latest = self.check_update()
        if not available:
            return None
        return self.switch_version(
            VersionSelection(version=latest),
            SwitchReason.UPDATE,
            license_accepted=license_accepted,
        )

    def close(self) -> None:
        self.fetcher.close()

    def __enter__(self) -> ServerUpdater:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
