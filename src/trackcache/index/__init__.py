"""Cache index backends."""

import logging
from pathlib import Path

from ..errors import BackingStoreUnavailable
from .base import CacheEntry, CacheIndex, NullIndex
from .json_index import INDEX_FILENAME, JsonIndex
from .sqlite_index import DB_FILENAME, SqliteIndex

logger = logging.getLogger(__name__)

BACKENDS = ("sqlite", "json")


def open_index(root: Path, backend: str = "sqlite") -> CacheIndex:
    """Open the configured index under the cache root.

    Args:
        root: Cache root directory
        backend: "sqlite" (per-insert commits) or "json" (flush on shutdown)

    Returns:
        Ready index, or a NullIndex if the backing store is unavailable

    Raises:
        ValueError: If backend is not a known backend name
    """
    if backend not in BACKENDS:
        raise ValueError(f"Unknown index backend '{backend}', expected one of {BACKENDS}")

    try:
        if backend == "json":
            return JsonIndex.load(Path(root) / INDEX_FILENAME)
        return SqliteIndex(Path(root) / DB_FILENAME)
    except BackingStoreUnavailable as e:
        logger.warning(f"{e}. Cache will be disabled")
        return NullIndex()


__all__ = [
    "BACKENDS",
    "DB_FILENAME",
    "INDEX_FILENAME",
    "CacheEntry",
    "CacheIndex",
    "JsonIndex",
    "NullIndex",
    "SqliteIndex",
    "open_index",
]
