"""HTTP client for version metadata and server archives."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

import httpx
import structlog

from bds_updater.core.config import AppConfig
from bds_updater.core.errors import NetworkError
from bds_updater.core.extractor import ArchiveExtractor
from bds_updater.core.types import Platform, ServerBuildInfo, VersionSelection

logger = structlog.get_logger()

ProgressCallback = Callable[[int], None]


def count_bytes(chunks: Iterable[bytes], callback: ProgressCallback | None) -> Iterator[bytes]:
    """Pass chunks through, reporting the cumulative byte count.

    Args:
        chunks: Byte chunks to forward
        callback: Called with the total received so far after each chunk

    Yields:
        The chunks unchanged
    """
    received = 0
    for chunk in chunks:
        received += len(chunk)
        if callback:
            callback(received)
        yield chunk


class PackageFetcher:
    """Fetches version metadata and streams server archives into staging.

    Args:
        config: Optional application configuration
        platform: Archive platform family, the running platform if None
        client: Optional preconfigured HTTP client
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        platform: Platform | None = None,
        client: httpx.Client | None = None,
    ):
        self.config = config or AppConfig()
        self.platform = platform or Platform.current()
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
                follow_redirects=True,
            )
        return self._client

    def build_url(self, selection: VersionSelection) -> str:
        """Archive URL for a version selection."""
        return self.config.archive_url(self.platform, selection.channel, selection.version)

    def fetch_build_info(self) -> ServerBuildInfo:
        """Fetch the remote version metadata.

        Returns:
            Parsed metadata for every platform

        Raises:
            NetworkError: If the endpoint returns non-success
        """
        url = self.config.metadata_url
        response = self.client.get(url)
        if not response.is_success:
            raise NetworkError(
                f"Failed to fetch version information: {response.status_code} {response.reason_phrase}",
                status=response.status_code,
                url=url,
            )

        info = ServerBuildInfo.model_validate(response.json())
        logger.debug("build_info_fetched", url=url, stable=info.for_platform(self.platform).stable)
        return info

    def download_and_extract(
        self,
        selection: VersionSelection,
        destination: Path,
        on_progress: ProgressCallback | None = None,
        on_total: Callable[[int | None], None] | None = None,
    ) -> int:
        """Stream an archive straight into a directory.

        Args:
            selection: Version and channel to fetch
            destination: Staging directory to extract into
            on_progress: Cumulative byte-count callback
            on_total: Called once with the Content-Length, or None if unknown

        Returns:
            Number of bytes received

        Raises:
            NetworkError: If the archive endpoint returns non-success
            ArchiveError: If the archive cannot be extracted
        """
        url = self.build_url(selection)
        logger.info("archive_download_started", url=url, version=selection.version)

        received = 0

        def track(total: int) -> None:
            nonlocal received
            received = total
            if on_progress:
                on_progress(total)

        with self.client.stream("GET", url) as response:
            if not response.is_success:
                raise NetworkError(
                    f"Failed to fetch server archive: {response.status_code} {response.reason_phrase}\n{url}",
                    status=response.status_code,
                    url=url,
                )

            if on_total:
                length = response.headers.get("content-length")
                on_total(int(length) if length and length.isdigit() else None)

            extractor = ArchiveExtractor(destination, chunk_size=self.config.chunk_size)
            files = extractor.extract(
                count_bytes(response.iter_bytes(chunk_size=self.config.chunk_size), track)
            )

        logger.info("archive_download_finished", url=url, bytes=received, files=files)
        return received

    def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> PackageFetcher:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
