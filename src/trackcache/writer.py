"""Stream-end write path: persist a finished track as a cached artifact."""

import asyncio
import hashlib
import logging
import os
import shutil
import tempfile
from concurrent.futures import Executor
from pathlib import Path, PurePosixPath
from typing import BinaryIO
from urllib.parse import quote, urlsplit

from .container import ArtifactHeader, EncoderSettings, encode_header
from .errors import IoFailure
from .index import CacheIndex
from .stream import TrackMetadata

logger = logging.getLogger(__name__)

# Longer tracks are assumed to be radio or live streams
MAX_DURATION_MS = 20 * 60 * 1000

COPY_CHUNK_SIZE = 64 * 1024
_MAX_NAME_LEN = 200
_DIGEST_LEN = 12


def artifact_relpath(source_url: str) -> PurePosixPath:
    """Derive the artifact location for a source URL.

    Artifacts live at ``<host>/<query>-<digest>``; URLs without a query use
    the last path segment instead. The digest is a SHA-1 prefix of the whole
    URL, so distinct URLs never share a file. Names that are empty, too long
    or would escape the host directory are replaced by the full digest.

    Args:
        source_url: Canonical URL of the stream

    Returns:
        Path relative to the cache root

    Raises:
        ValueError: If the URL has no usable host
    """
    parts = urlsplit(source_url)
    host = parts.hostname
    if not host or host in (".", ".."):
        raise ValueError(f"Source URL has no host: {source_url!r}")

    digest = hashlib.sha1(source_url.encode("utf-8")).hexdigest()
    name = quote(parts.query or PurePosixPath(parts.path).name, safe="=&-_.,")
    if name in ("", ".", "..") or len(name) > _MAX_NAME_LEN:
        return PurePosixPath(host) / digest

    return PurePosixPath(host) / f"{name}-{digest[:_DIGEST_LEN]}"


class CacheWriter:
    """Writes finished streams to the cache and registers them in the index.

    Example:
        writer = CacheWriter(index, Path("audio_cache"))
        relpath = await writer.write(metadata, buffer.new_handle())
        # "host/v=abc-1f3a9c0e5b7d" once written, None if skipped or failed

    Concurrent writes for the same source are serialized: while one task is
    copying a source, other finishers for it skip immediately.
    """

    def __init__(
        self,
        index: CacheIndex,
        cache_root: Path,
        *,
        max_duration_ms: int = MAX_DURATION_MS,
        cache_unknown_duration: bool = False,
        encoder: EncoderSettings | None = None,
        executor: Executor | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            index: Index updated after successful writes
            cache_root: Directory holding per-host artifact folders
            max_duration_ms: Tracks longer than this are never cached
            cache_unknown_duration: Whether tracks without a duration are cached
            encoder: Encoder parameters recorded in artifact headers
            executor: Pool for the blocking copy (asyncio default pool if None)
        """
        self.index = index
        self.cache_root = Path(cache_root)
        self.max_duration_ms = max_duration_ms
        self.cache_unknown_duration = cache_unknown_duration
        self.encoder = encoder or EncoderSettings()
        self._executor = executor
        self._lock = asyncio.Lock()
        self._in_flight: set[str] = set()

    def is_eligible(self, metadata: TrackMetadata) -> bool:
        """Check whether a finished track should be cached at all."""
        if metadata.source_url is None:
            logger.debug("Not caching track without a source URL")
            return False
        if metadata.channels is None:
            logger.debug(f"Not caching {metadata.source_url}: unknown channel count")
            return False
        if metadata.duration_ms is None:
            if not self.cache_unknown_duration:
                logger.debug(f"Not caching {metadata.source_url}: unknown duration")
            return self.cache_unknown_duration
        if metadata.duration_ms > self.max_duration_ms:
            logger.debug(
                f"Not caching {metadata.source_url}: {metadata.duration_ms}ms "
                f"exceeds {self.max_duration_ms}ms"
            )
            return False
        return True

    async def write(self, metadata: TrackMetadata, handle: BinaryIO) -> str | None:
        """Persist a finished track.

        Takes ownership of ``handle`` and closes it. Failures are logged and
        leave the index untouched; they never propagate.

        Args:
            metadata: Metadata of the finished track
            handle: Independent reader over the track's compressed bytes

        Returns:
            Relative artifact path if the track was written, None otherwise
        """
        try:
            if not self.is_eligible(metadata):
                return None
            source_key = str(metadata.source_url)

            try:
                relpath = artifact_relpath(source_key)
            except ValueError as e:
                logger.warning(f"Not caching {source_key}: {e}")
                return None

            if not await self._claim(source_key):
                return None
            try:
                return await self._write_claimed(source_key, relpath, metadata, handle)
            finally:
                async with self._lock:
                    self._in_flight.discard(source_key)
        finally:
            handle.close()

    async def _claim(self, source_key: str) -> bool:
        """Mark ``source_key`` in flight unless it is cached or being cached."""
        async with self._lock:
            if source_key in self._in_flight:
                logger.debug(f"{source_key} is already being cached")
                return False
            try:
                cached = await self.index.lookup(source_key)
            except IoFailure as e:
                logger.warning(f"Skipping cache write for {source_key}: {e}")
                return False
            if cached is not None:
                logger.debug(f"{source_key} is already cached at {cached}")
                return False
            self._in_flight.add(source_key)
            return True

    async def _write_claimed(
        self,
        source_key: str,
        relpath: PurePosixPath,
        metadata: TrackMetadata,
        handle: BinaryIO,
    ) -> str | None:
        header = encode_header(ArtifactHeader.from_metadata(metadata, self.encoder))
        destination = self.cache_root / relpath

        logger.info(f"Starting cache write for {source_key}")
        loop = asyncio.get_running_loop()
        try:
            size = await loop.run_in_executor(
                self._executor, _copy_to_file, destination, header, handle
            )
        except OSError as e:
            logger.error(f"Failed to write cache artifact {destination}: {e}")
            return None
        except Exception as e:
            logger.error(f"Error reading stream for {source_key}: {e}")
            return None
        logger.info(f"Wrote {size // 1024}KiB to {destination}")

        try:
            await self.index.insert(source_key, relpath.as_posix())
        except IoFailure as e:
            logger.warning(f"Error adding entry to cache: {e}")
            return None
        return relpath.as_posix()


def _copy_to_file(destination: Path, header: bytes, handle: BinaryIO) -> int:
    """Write header and payload to ``destination`` (blocking).

    Data goes to a uniquely named ``.part`` file next to the destination
    that is renamed into place only once the producer reaches end-of-stream,
    and removed on failure.

    Returns:
        Total bytes written
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    f = tempfile.NamedTemporaryFile(
        dir=destination.parent,
        prefix=f"{destination.name}.",
        suffix=".part",
        delete=False,
    )
    part_path = Path(f.name)
    try:
        with f:
            f.write(header)
            shutil.copyfileobj(handle, f, COPY_CHUNK_SIZE)
            f.flush()
            os.fsync(f.fileno())
            size = f.tell()
        os.replace(part_path, destination)
    except Exception:
        if part_path.exists():
            try:
                part_path.unlink()
                logger.debug(f"Cleaned up partial artifact: {part_path}")
            except OSError as cleanup_error:
                logger.warning(
                    f"Failed to clean up partial artifact: {cleanup_error}"
                )
        raise
    return size
