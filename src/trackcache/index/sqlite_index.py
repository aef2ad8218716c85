"""SQLite cache index where every insert is its own transaction."""

import asyncio
import logging
import sqlite3
from pathlib import Path

from ..errors import BackingStoreUnavailable, IoFailure
from .base import CacheIndex

logger = logging.getLogger(__name__)

DB_FILENAME = "cache.db"


class SqliteIndex(CacheIndex):
    """SQLite-based cache index.

    Stores ``(Uri, Path)`` rows in a single ``Cache`` table. Each operation
    opens its own connection and commits immediately, so no flush is needed
    at shutdown. Database calls run in a worker thread while the index lock
    is held.
    """

    def __init__(self, db_path: Path):
        """Open (or create) the index database.

        Args:
            db_path: Location of the SQLite database file

        Raises:
            BackingStoreUnavailable: If the database cannot be opened or
                its schema created
        """
        super().__init__()
        self.db_path = Path(db_path)

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
            try:
                self._init_db(conn)
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise BackingStoreUnavailable(
                f"Failed to open cache database {self.db_path}: {e}", e
            ) from e

        logger.debug(f"Opened cache database at {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get a new database connection with WAL mode for concurrency."""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=30.0,  # 30 second timeout if locked
            check_same_thread=False,  # Used from worker threads
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _init_db(self, conn: sqlite3.Connection) -> None:
        """Initialize database schema."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS Cache (
                Uri TEXT PRIMARY KEY,
                Path TEXT NOT NULL
            )
        """)
        conn.commit()

    def _run(self, sql: str, params: tuple = ()) -> list[sqlite3.Row] | int:
        """Execute one statement in its own transaction.

        Returns:
            Fetched rows for queries, affected row count otherwise

        Raises:
            IoFailure: On any database error
        """
        try:
            conn = self._get_connection()
            try:
                cursor = conn.execute(sql, params)
                if cursor.description is not None:
                    return cursor.fetchall()
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise IoFailure(f"Cache database error: {e}", str(self.db_path), e) from e

    async def _get(self, source_key: str) -> str | None:
        rows = await asyncio.to_thread(
            self._run, "SELECT Path FROM Cache WHERE Uri = ?", (source_key,)
        )
        return rows[0]["Path"] if rows else None

    async def _put(self, source_key: str, artifact_path: str) -> None:
        await asyncio.to_thread(
            self._run,
            "INSERT OR REPLACE INTO Cache (Uri, Path) VALUES (?, ?)",
            (source_key, artifact_path),
        )

    async def _delete(self, source_key: str) -> bool:
        count = await asyncio.to_thread(
            self._run, "DELETE FROM Cache WHERE Uri = ?", (source_key,)
        )
        return count > 0

    async def _items(self) -> list[tuple[str, str]]:
        rows = await asyncio.to_thread(self._run, "SELECT Uri, Path FROM Cache")
        return [(row["Uri"], row["Path"]) for row in rows]
