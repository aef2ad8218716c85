"""Configuration management for trackcache.

Loads configuration from ~/.config/trackcache/config.toml.
Priority chain: env vars > config file > built-in defaults.
"""

import os
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .container import EncoderSettings
from .index import BACKENDS
from .paths import get_config_path, get_default_cache_root

DEFAULT_CONFIG = """\
# trackcache configuration

[cache]
# Artifact root; holds one folder per host plus the index
# (defaults to $XDG_CACHE_HOME/trackcache/audio_cache)
# root = "audio_cache"

# Index backend: "sqlite" (every insert committed) or "json" (saved on shutdown)
backend = "sqlite"

# Tracks longer than this are treated as radio/live streams and never cached
max_duration_secs = 1200

# Cache tracks whose duration is unknown
cache_unknown_duration = false

# Worker threads used to copy finished streams to disk
workers = 2

[encoder]
# Recorded in every artifact header; must match the playback encoder
mode = "music"
bitrate = 128000
frame_size = 960
default_sample_rate = 48000

# Environment overrides:
#   TRACKCACHE_ROOT     - cache.root
#   TRACKCACHE_BACKEND  - cache.backend
"""


@dataclass(frozen=True)
class CacheConfig:
    """Cache storage configuration."""

    root: Path
    backend: str
    max_duration_secs: int
    cache_unknown_duration: bool
    workers: int

    @property
    def max_duration_ms(self) -> int:
        return self.max_duration_secs * 1000


@dataclass(frozen=True)
class TrackCacheConfig:
    """Top-level trackcache configuration."""

    cache: CacheConfig
    encoder: EncoderSettings


_cached_config: TrackCacheConfig | None = None


def generate_config(path: Path | None = None) -> Path:
    """Write the default config file, creating its directory."""
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG)
    return path


def _check(
    section: dict[str, Any], key: str, kind: type, default: Any, errors: list[str]
) -> Any:
    value = section.get(key, default)
    if (isinstance(value, bool) and kind is not bool) or not isinstance(value, kind):
        errors.append(f"{key} must be of type {kind.__name__}")
        return default
    return value


def load_config(path: Path | None = None) -> TrackCacheConfig:
    """Load configuration from the config file with env var overrides.

    A missing file yields the built-in defaults. The result for the default
    location is memoized.

    Args:
        path: Explicit config file (bypasses the memoized default)

    Returns:
        Loaded and validated TrackCacheConfig.

    Raises:
        SystemExit: If the config file is unreadable or invalid.
    """
    global _cached_config
    if path is None and _cached_config is not None:
        return _cached_config

    config_path = path or get_config_path()
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            print(f"Failed to read config {config_path}: {e}", file=sys.stderr)
            raise SystemExit(1) from e

    cache = data.get("cache", {})
    encoder = data.get("encoder", {})
    defaults = EncoderSettings()

    errors: list[str] = []
    root = _check(cache, "root", str, "", errors)
    backend = _check(cache, "backend", str, "sqlite", errors)
    max_duration_secs = _check(cache, "max_duration_secs", int, 1200, errors)
    cache_unknown_duration = _check(
        cache, "cache_unknown_duration", bool, False, errors
    )
    workers = _check(cache, "workers", int, 2, errors)
    mode = _check(encoder, "mode", str, defaults.mode, errors)
    bitrate = _check(encoder, "bitrate", int, defaults.bitrate, errors)
    frame_size = _check(encoder, "frame_size", int, defaults.frame_size, errors)
    sample_rate = _check(
        encoder, "default_sample_rate", int, defaults.default_sample_rate, errors
    )

    # Env vars override config file values
    root = os.getenv("TRACKCACHE_ROOT", root)
    backend = os.getenv("TRACKCACHE_BACKEND", backend)

    if backend not in BACKENDS:
        errors.append(f"backend must be one of {', '.join(BACKENDS)}, got '{backend}'")
    if max_duration_secs <= 0:
        errors.append("max_duration_secs must be positive")
    if workers <= 0:
        errors.append("workers must be positive")

    if errors:
        print(f"Invalid config values: {'; '.join(errors)}", file=sys.stderr)
        print(f"Edit {config_path} or delete it to use defaults.", file=sys.stderr)
        raise SystemExit(1)

    config = TrackCacheConfig(
        cache=CacheConfig(
            root=Path(root).expanduser() if root else get_default_cache_root(),
            backend=backend,
            max_duration_secs=max_duration_secs,
            cache_unknown_duration=cache_unknown_duration,
            workers=workers,
        ),
        encoder=EncoderSettings(
            mode=mode,
            bitrate=bitrate,
            frame_size=frame_size,
            default_sample_rate=sample_rate,
        ),
    )

    if path is None:
        _cached_config = config
    return config
