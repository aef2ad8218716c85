"""Cache index contract shared by the flat-file and SQLite backends."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Mapping from a source URL to its artifact.

    Attributes:
        source_key: Canonical URL of the original stream
        artifact_path: POSIX path of the artifact relative to the cache root
    """

    source_key: str
    artifact_path: str


class CacheIndex(ABC):
    """Source URL to artifact path mapping with internal synchronization.

    Every public operation holds a single ``asyncio.Lock`` for the duration of
    the backend call, so concurrent playback sessions never observe a partial
    update. The raw mapping is never handed out; ``entries`` returns a copy.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def lookup(self, source_key: str) -> str | None:
        """Return the artifact path for ``source_key``, or None on a miss."""
        async with self._lock:
            return await self._get(source_key)

    async def insert(self, source_key: str, artifact_path: str) -> None:
        """Map ``source_key`` to ``artifact_path``, replacing any prior mapping."""
        async with self._lock:
            await self._put(source_key, artifact_path)
        logger.debug(f"Indexed {source_key} -> {artifact_path}")

    async def remove(self, source_key: str) -> bool:
        """Drop the mapping for ``source_key``.

        Returns:
            True if a mapping was removed
        """
        async with self._lock:
            return await self._delete(source_key)

    async def entries(self) -> list[CacheEntry]:
        """Return a snapshot of all mappings ordered by source key."""
        async with self._lock:
            items = await self._items()
        return [CacheEntry(key, path) for key, path in sorted(items)]

    def persist(self) -> None:
        """Write the mapping back to its backing store.

        Backends that commit every insert do nothing here.

        Raises:
            IoFailure: If the backing store cannot be written
        """

    def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def _get(self, source_key: str) -> str | None: ...

    @abstractmethod
    async def _put(self, source_key: str, artifact_path: str) -> None: ...

    @abstractmethod
    async def _delete(self, source_key: str) -> bool: ...

    @abstractmethod
    async def _items(self) -> list[tuple[str, str]]: ...


class NullIndex(CacheIndex):
    """Index used when the backing store is unavailable; caching is off."""

    async def _get(self, source_key: str) -> str | None:
        return None

    async def _put(self, source_key: str, artifact_path: str) -> None:
        pass

    async def _delete(self, source_key: str) -> bool:
        return False

    async def _items(self) -> list[tuple[str, str]]:
        return []
