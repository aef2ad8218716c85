"""Flat-file cache index stored as a single JSON object."""

import json
import logging
import os
from pathlib import Path

from ..errors import IoFailure
from .base import CacheIndex

logger = logging.getLogger(__name__)

INDEX_FILENAME = "cold.json"


class JsonIndex(CacheIndex):
    """In-memory mapping loaded from and persisted to ``cold.json``.

    Inserts only touch memory; ``persist`` must be called from the orderly
    shutdown sequence to keep them.
    """

    def __init__(self, path: Path, entries: dict[str, str] | None = None) -> None:
        super().__init__()
        self.path = Path(path)
        self._entries: dict[str, str] = dict(entries or {})

    @classmethod
    def load(cls, path: Path) -> "JsonIndex":
        """Load the index, starting cold if the file is missing or corrupt.

        Args:
            path: Location of the JSON index file

        Returns:
            Loaded index (empty when nothing usable was found)
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No index at {path}, starting with an empty cache")
            return cls(path)
        except OSError as e:
            logger.warning(f"Failed to read cache index {path}, starting cold: {e}")
            return cls(path)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt cache index {path}, starting cold: {e}")
            return cls(path)

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            logger.warning(f"Cache index {path} is not a string mapping, starting cold")
            return cls(path)

        logger.debug(f"Loaded {len(data)} cache entries from {path}")
        return cls(path, data)

    def persist(self) -> None:
        """Atomically rewrite the index file with the current mapping."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._entries), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise IoFailure(
                f"Failed to persist cache index: {e}", str(self.path), e
            ) from e
        logger.info(f"Persisted {len(self._entries)} cache entries to {self.path}")

    async def _get(self, source_key: str) -> str | None:
        return self._entries.get(source_key)

    async def _put(self, source_key: str, artifact_path: str) -> None:
        self._entries[source_key] = artifact_path

    async def _delete(self, source_key: str) -> bool:
        return self._entries.pop(source_key, None) is not None

    async def _items(self) -> list[tuple[str, str]]:
        return list(self._entries.items())
