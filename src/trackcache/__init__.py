"""trackcache - on-disk cache of compressed audio streams for voice playback."""

__version__ = "0.1.0"
__all__ = ["CachedTrack", "SharedBuffer", "TrackCacheService", "TrackMetadata"]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    if name == "TrackCacheService":
        from .service import TrackCacheService

        return TrackCacheService
    if name == "CachedTrack":
        from .reader import CachedTrack

        return CachedTrack
    if name in ("SharedBuffer", "TrackMetadata"):
        from . import stream

        return getattr(stream, name)
    raise AttributeError(f"module 'trackcache' has no attribute {name!r}")
