"""XDG-compliant default locations for trackcache."""

import os
from pathlib import Path


def get_cache_home() -> Path:
    """Get XDG-compliant cache directory.

    Priority:
    1. $XDG_CACHE_HOME/trackcache/
    2. ~/.cache/trackcache/

    Returns:
        Path to the trackcache cache directory (not created)
    """
    cache_home = os.environ.get("XDG_CACHE_HOME")
    if cache_home:
        return Path(cache_home) / "trackcache"
    return Path.home() / ".cache" / "trackcache"


def get_default_cache_root() -> Path:
    """Get the default artifact root holding per-host folders and the index."""
    return get_cache_home() / "audio_cache"


def get_config_dir() -> Path:
    """Get XDG-compliant configuration directory.

    Priority:
    1. $XDG_CONFIG_HOME/trackcache/
    2. ~/.config/trackcache/

    Returns:
        Path to configuration directory (not created)
    """
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "trackcache"
    return Path.home() / ".config" / "trackcache"


def get_config_path() -> Path:
    """Get the path of the TOML configuration file."""
    return get_config_dir() / "config.toml"
