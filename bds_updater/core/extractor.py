"""Streaming archive extraction into the staging directory."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path, PurePosixPath

import structlog
from stream_unzip import UnzipError, stream_unzip

from bds_updater.core.errors import ArchiveError

logger = structlog.get_logger()


def _decode_name(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("cp437")


class ArchiveExtractor:
    """Writes zip members to disk as their bytes arrive.

    The archive is consumed as an iterable of byte chunks and never held
    in memory as a whole.

    Args:
        destination: Directory members are extracted into
        chunk_size: Decompressed chunk size handed back by the unzipper
    """

    def __init__(self, destination: Path, chunk_size: int = 64 * 1024) -> None:
        self.destination = Path(destination)
        self.chunk_size = chunk_size

    def _target(self, name: str) -> Path:
        """Resolve an archive member name inside the destination.

        Raises:
            ArchiveError: If the name is absolute or escapes the destination
        """
        member = PurePosixPath(name.replace("\\", "/"))
        if not member.parts or member.is_absolute() or ".." in member.parts or ":" in member.parts[0]:
            raise ArchiveError(f"Archive member escapes staging directory: {name}", path=name)
        return self.destination.joinpath(*member.parts)

    def extract(self, chunks: Iterable[bytes]) -> int:
        """Extract every member of a zip stream.

        Args:
            chunks: Archive bytes in order

        Returns:
            Number of files written

        Raises:
            ArchiveError: On unsafe member names or a malformed archive
        """
        self.destination.mkdir(parents=True, exist_ok=True)
        files = 0

        try:
            for raw_name, _size, member_chunks in stream_unzip(chunks, chunk_size=self.chunk_size):
                name = _decode_name(raw_name).replace("\\", "/")
                target = self._target(name)

                try:
                    if name.endswith("/"):
                        target.mkdir(parents=True, exist_ok=True)
                        for _ in member_chunks:
                            pass
                        continue

                    target.parent.mkdir(parents=True, exist_ok=True)
                    with open(target, "wb") as f:
                        for chunk in member_chunks:
                            f.write(chunk)
                except (FileExistsError, NotADirectoryError, IsADirectoryError) as e:
                    raise ArchiveError(f"Archive member conflicts with an earlier entry: {name}", path=name) from e
                files += 1
        except UnzipError as e:
            raise ArchiveError(f"Malformed archive: {e}") from e

        logger.debug("archive_extracted", destination=str(self.destination), files=files)
        return files
