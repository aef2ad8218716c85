"""Integration tests for TrackCacheService lifecycle."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from test_helpers import make_config
from trackcache import TrackCacheService
from trackcache.errors import IoFailure
from trackcache.index import JsonIndex, NullIndex, SqliteIndex
from trackcache.stream import SharedBuffer
from trackcache.writer import artifact_relpath

URL = "https://host/query?a=1"
RELPATH = artifact_relpath(URL).as_posix()


class TestServiceLifecycle:
    """Test start, write, lookup and shutdown across restarts."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("backend", ["json", "sqlite"])
    async def test_cache_survives_restart(
        self, cache_root, metadata, payload, backend
    ) -> None:
        """Test a track written in one session is served by the next."""
        config = make_config(cache_root, backend)

        async with TrackCacheService.start(config) as cache:
            assert cache.enabled
            buffer = SharedBuffer.from_bytes(payload, metadata)
            task = cache.on_stream_end(metadata, buffer.new_handle())
            assert task is not None
            assert await task == RELPATH

        async with TrackCacheService.start(config) as cache:
            track = await cache.lookup_and_open(URL)
            assert track is not None
            with track:
                assert track.metadata == metadata
                assert track.payload.read() == payload

    @pytest.mark.asyncio
    async def test_backend_selection(self, cache_root) -> None:
        async with TrackCacheService.start(make_config(cache_root, "json")) as cache:
            assert isinstance(cache.index, JsonIndex)
        async with TrackCacheService.start(make_config(cache_root, "sqlite")) as cache:
            assert isinstance(cache.index, SqliteIndex)

    @pytest.mark.asyncio
    async def test_shutdown_drains_pending_writes(
        self, cache_root, metadata
    ) -> None:
        """Test shutdown waits for writes still copying and persists them."""
        cache = TrackCacheService.start(make_config(cache_root, "json"))
        buffer = SharedBuffer(metadata)
        buffer.write(b"opus-frames")
        task = cache.on_stream_end(metadata, buffer.new_handle())
        await asyncio.sleep(0.05)
        assert cache.pending_writes == 1

        asyncio.get_running_loop().call_later(0.05, buffer.finish)
        await cache.shutdown()

        assert task.done()
        assert cache.pending_writes == 0
        reloaded = JsonIndex.load(cache_root / "cold.json")
        assert await reloaded.lookup(URL) == RELPATH

    @pytest.mark.asyncio
    async def test_stream_end_after_shutdown_is_ignored(
        self, cache_root, metadata
    ) -> None:
        cache = TrackCacheService.start(make_config(cache_root))
        await cache.shutdown()
        handle = SharedBuffer.from_bytes(b"x", metadata).new_handle()

        assert cache.on_stream_end(metadata, handle) is None
        assert handle.closed

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, cache_root) -> None:
        cache = TrackCacheService.start(make_config(cache_root))
        await cache.shutdown()
        await cache.shutdown()


class TestServiceFailures:
    """Test failures degrade instead of breaking playback."""

    @pytest.mark.asyncio
    async def test_unavailable_store_disables_cache(
        self, tmp_path, metadata, payload
    ) -> None:
        """Test an unusable cache root still yields a working service."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        async with TrackCacheService.start(make_config(blocker, "sqlite")) as cache:
            assert isinstance(cache.index, NullIndex)
            assert not cache.enabled
            assert await cache.lookup_and_open(URL) is None
            task = cache.on_stream_end(
                metadata, SharedBuffer.from_bytes(payload, metadata).new_handle()
            )
            assert await task is None

    @pytest.mark.asyncio
    async def test_persist_failure_is_raised(self, cache_root) -> None:
        """Test a failed index flush at shutdown is reported to the host."""
        cache = TrackCacheService.start(make_config(cache_root, "json"))

        with patch.object(
            cache.index, "persist", side_effect=IoFailure("read-only filesystem")
        ):
            with pytest.raises(IoFailure, match="read-only"):
                await cache.shutdown()

    @pytest.mark.asyncio
    async def test_unexpected_writer_error_resolves_to_none(
        self, cache_root, metadata
    ) -> None:
        """Test the fire-and-forget task never raises."""
        async with TrackCacheService.start(make_config(cache_root)) as cache:
            with patch.object(
                cache.writer, "write", AsyncMock(side_effect=RuntimeError("boom"))
            ):
                task = cache.on_stream_end(
                    metadata, SharedBuffer.from_bytes(b"x", metadata).new_handle()
                )
                assert await task is None

    @pytest.mark.asyncio
    async def test_lookup_error_is_a_miss(self, cache_root) -> None:
        async with TrackCacheService.start(make_config(cache_root)) as cache:
            with patch.object(
                cache.reader, "open", AsyncMock(side_effect=RuntimeError("boom"))
            ):
                assert await cache.lookup_and_open(URL) is None
