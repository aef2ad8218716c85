"""Pytest configuration and fixtures for trackcache tests."""

import sys
from pathlib import Path

import pytest

# Add src and the tests directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from trackcache.stream import TrackMetadata


@pytest.fixture(autouse=True)
def isolate_user_dirs(monkeypatch, tmp_path) -> None:
    """Point XDG directories at a per-test location and drop memoized config."""
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.delenv("TRACKCACHE_ROOT", raising=False)
    monkeypatch.delenv("TRACKCACHE_BACKEND", raising=False)
    monkeypatch.setattr("trackcache.config._cached_config", None)


@pytest.fixture
def cache_root(tmp_path) -> Path:
    """Artifact root for a test (not created up front)."""
    return tmp_path / "audio_cache"


@pytest.fixture
def metadata() -> TrackMetadata:
    """Metadata of a five minute stereo track."""
    return TrackMetadata(
        title="Test Track",
        artist="Test Artist",
        date="20210314",
        duration_ms=300_000,
        sample_rate=48_000,
        channels=2,
        source_url="https://host/query?a=1",
        thumbnail="https://host/thumb.jpg",
    )


@pytest.fixture
def payload() -> bytes:
    """Fake compressed payload spanning several copy chunks."""
    return bytes(range(256)) * 1024
