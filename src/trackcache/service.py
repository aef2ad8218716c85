"""Cache service consumed by the playback layer.

Ties the index, writer and reader together behind the two calls playback
needs: ``lookup_and_open`` before starting a track and ``on_stream_end`` when
a track finishes normally.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import BinaryIO

from .config import TrackCacheConfig, load_config
from .errors import IoFailure
from .index import CacheIndex, NullIndex, open_index
from .reader import CachedTrack, CacheReader
from .stream import TrackMetadata
from .writer import CacheWriter

logger = logging.getLogger(__name__)


class TrackCacheService:
    """Process-wide audio cache.

    Example:
        async with TrackCacheService.start() as cache:
            track = await cache.lookup_and_open(url)
            if track is None:
                buffer = await fetch_and_encode(url)  # playback layer
                ...
                # when the track ends normally:
                cache.on_stream_end(buffer.metadata, buffer.new_handle())

    ``shutdown`` (or leaving the ``async with`` block) waits for pending
    writes and persists the index; hosts call it from their orderly shutdown
    sequence.
    """

    def __init__(
        self,
        index: CacheIndex,
        cache_root: Path,
        writer: CacheWriter | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """Initialize the service with an already opened index.

        Args:
            index: Cache index shared by reader and writer
            cache_root: Directory holding artifacts
            writer: Preconfigured writer (a default one is built if None)
            executor: Worker pool owned by the service, shut down on shutdown
        """
        self.index = index
        self.cache_root = Path(cache_root)
        self.writer = writer or CacheWriter(index, self.cache_root, executor=executor)
        self.reader = CacheReader(index, self.cache_root)
        self._executor = executor
        self._pending: set[asyncio.Task[str | None]] = set()
        self._closed = False

    @classmethod
    def start(cls, config: TrackCacheConfig | None = None) -> "TrackCacheService":
        """Build the service from configuration.

        An unavailable backing store disables caching instead of failing.
        """
        config = config or load_config()
        cache = config.cache

        index = open_index(cache.root, cache.backend)
        executor = ThreadPoolExecutor(
            max_workers=cache.workers, thread_name_prefix="trackcache-writer"
        )
        writer = CacheWriter(
            index,
            cache.root,
            max_duration_ms=cache.max_duration_ms,
            cache_unknown_duration=cache.cache_unknown_duration,
            encoder=config.encoder,
            executor=executor,
        )

        logger.info(
            f"Track cache started at {cache.root} with {cache.backend} index"
            f"{'' if not isinstance(index, NullIndex) else ' (disabled)'}"
        )
        return cls(index, cache.root, writer=writer, executor=executor)

    @property
    def enabled(self) -> bool:
        return not isinstance(self.index, NullIndex)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def lookup_and_open(self, source_key: str) -> CachedTrack | None:
        """Return an open cached track for ``source_key``, or None.

        Never raises; any cache problem is reported as a miss.
        """
        try:
            return await self.reader.open(source_key)
        except Exception as e:
            logger.error(f"Error during cache lookup: {e}")
            return None

    def on_stream_end(
        self, metadata: TrackMetadata, handle: BinaryIO
    ) -> asyncio.Task[str | None] | None:
        """Schedule a cache write for a track that finished normally.

        Fire-and-forget: the returned task never raises. Must be called from
        the event loop.

        Returns:
            Task resolving to the artifact path (or None), or None if the
            service is already shut down
        """
        if self._closed:
            logger.debug(f"Ignoring stream end for {metadata.source_url}: shut down")
            handle.close()
            return None

        task = asyncio.create_task(self._write(metadata, handle))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, metadata: TrackMetadata, handle: BinaryIO) -> str | None:
        if not self.enabled:
            handle.close()
            return None
        try:
            return await self.writer.write(metadata, handle)
        except Exception as e:
            logger.error(f"Error caching {metadata.source_url}: {e}")
            return None

    async def drain(self) -> None:
        """Wait for all scheduled cache writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def shutdown(self) -> None:
        """Finish pending writes and persist the index.

        Raises:
            IoFailure: If the index cannot be persisted; the cache state of
                this session would otherwise be silently lost
        """
        if self._closed:
            return
        self._closed = True

        await self.drain()
        try:
            self.index.persist()
        except IoFailure as e:
            logger.critical(f"Failed to persist cache index: {e}")
            raise
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
            self.index.close()
        logger.info("Track cache shut down")

    async def __aenter__(self) -> "TrackCacheService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()
