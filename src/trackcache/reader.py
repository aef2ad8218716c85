"""Read path: serve a playback request from a cached artifact."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .container import ArtifactHeader, decode_header
from .errors import InvalidContainer, IoFailure
from .index import CacheIndex
from .stream import TrackMetadata

logger = logging.getLogger(__name__)


@dataclass
class CachedTrack:
    """Open cached artifact ready for playback.

    Attributes:
        source_key: URL the track was looked up by
        path: Absolute location of the artifact
        header: Decoded artifact header
        metadata: Playback metadata reconstructed from the header
        payload: Binary file positioned at the first compressed byte
        payload_offset: Byte offset of the payload within the file
    """

    source_key: str
    path: Path
    header: ArtifactHeader
    metadata: TrackMetadata
    payload: BinaryIO
    payload_offset: int

    def close(self) -> None:
        self.payload.close()

    def __enter__(self) -> "CachedTrack":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CacheReader:
    """Looks up and opens cached artifacts.

    Every failure degrades to a cache miss so playback falls back to the
    normal fetch-and-encode path.
    """

    def __init__(self, index: CacheIndex, cache_root: Path) -> None:
        self.index = index
        self.cache_root = Path(cache_root)

    async def open(self, source_key: str) -> CachedTrack | None:
        """Open the cached artifact for ``source_key``.

        Args:
            source_key: Canonical URL of the requested stream

        Returns:
            Open CachedTrack on a hit, None on a miss or unreadable artifact.
            The caller owns the returned track and must close it.
        """
        try:
            relpath = await self.index.lookup(source_key)
        except IoFailure as e:
            logger.warning(f"Cache lookup failed for {source_key}: {e}")
            return None

        if relpath is None:
            logger.debug(f"Cache miss: {source_key}")
            return None

        path = self.cache_root / relpath
        try:
            track = await asyncio.to_thread(self._open_artifact, source_key, path)
        except InvalidContainer as e:
            logger.warning(f"Ignoring corrupt cache artifact {path}: {e}")
            return None
        except OSError as e:
            logger.warning(f"Failed to open cache artifact {path}: {e}")
            return None

        logger.debug(
            f"Cache hit: {source_key} -> {path} "
            f"(payload at byte {track.payload_offset})"
        )
        return track

    def _open_artifact(self, source_key: str, path: Path) -> CachedTrack:
        f = open(path, "rb")
        try:
            header = decode_header(f)
        except Exception:
            f.close()
            raise
        return CachedTrack(
            source_key=source_key,
            path=path,
            header=header,
            metadata=header.to_metadata(source_key),
            payload=f,
            payload_offset=f.tell(),
        )
