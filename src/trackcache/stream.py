"""Track metadata and the compressed byte stream shared with the cache writer.

The encoder side of playback appends Opus frames to a ``SharedBuffer`` while
the voice connection consumes them. When the track ends, the cache writer
takes its own handle on the same buffer and copies it to disk without
disturbing the playback reader.
"""

import io
import threading
from dataclasses import dataclass


@dataclass
class TrackMetadata:
    """Metadata record exchanged with the playback layer.

    Args:
        title: Track title, if known
        artist: Track artist, if known
        date: Release or upload date as reported by the source
        duration_ms: Track length in milliseconds
        sample_rate: Sample rate of the encoded audio in Hz
        channels: Channel count of the encoded audio
        source_url: Canonical URL of the original stream (the cache key)
        thumbnail: Thumbnail image URL
    """

    title: str | None = None
    artist: str | None = None
    date: str | None = None
    duration_ms: int | None = None
    sample_rate: int | None = None
    channels: int | None = None
    source_url: str | None = None
    thumbnail: str | None = None

    def __post_init__(self) -> None:
        """Validate numeric fields."""
        if self.duration_ms is not None and self.duration_ms < 0:
            raise ValueError("duration_ms cannot be negative")
        if self.channels is not None and self.channels <= 0:
            raise ValueError("channels must be positive")
        if self.sample_rate is not None and self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")


class SharedBuffer:
    """Append-only byte buffer with independent blocking readers.

    One producer calls ``write`` as compressed frames become available and
    ``finish`` (or ``fail``) when the source is exhausted. Any number of
    handles from ``new_handle`` can read the full stream from the start, each
    keeping its own position. Reads block until more data arrives or the
    stream ends, so handles must only be drained from worker threads.
    """

    def __init__(self, metadata: TrackMetadata | None = None) -> None:
        self.metadata = metadata or TrackMetadata()
        self._data = bytearray()
        self._cond = threading.Condition()
        self._finished = False
        self._error: Exception | None = None

    @classmethod
    def from_bytes(
        cls, data: bytes, metadata: TrackMetadata | None = None
    ) -> "SharedBuffer":
        """Create an already finished buffer holding ``data``."""
        buffer = cls(metadata)
        buffer.write(data)
        buffer.finish()
        return buffer

    def __len__(self) -> int:
        with self._cond:
            return len(self._data)

    @property
    def finished(self) -> bool:
        with self._cond:
            return self._finished

    def write(self, data: bytes) -> int:
        """Append compressed bytes and wake up waiting readers.

        Raises:
            ValueError: If the stream has already been finished
        """
        with self._cond:
            if self._finished:
                raise ValueError("Cannot write to a finished stream")
            self._data.extend(data)
            self._cond.notify_all()
        return len(data)

    def finish(self) -> None:
        """Mark end-of-stream."""
        with self._cond:
            self._finished = True
            self._cond.notify_all()

    def fail(self, error: Exception) -> None:
        """Abort the stream; pending and future reads raise ``OSError``."""
        with self._cond:
            self._error = error
            self._finished = True
            self._cond.notify_all()

    def new_handle(self) -> "BufferHandle":
        """Return a reader positioned at the start of the stream."""
        return BufferHandle(self)

    def _read_at(self, position: int, size: int) -> bytes:
        with self._cond:
            while (
                position >= len(self._data)
                and not self._finished
                and self._error is None
            ):
                self._cond.wait()
            if self._error is not None:
                raise OSError(f"Compressed stream aborted: {self._error}") from (
                    self._error
                )
            return bytes(self._data[position : position + size])


class BufferHandle(io.RawIOBase):
    """Blocking file-like reader over a ``SharedBuffer``."""

    def __init__(self, buffer: SharedBuffer) -> None:
        super().__init__()
        self._buffer = buffer
        self._position = 0

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:  # type: ignore[no-untyped-def]
        chunk = self._buffer._read_at(self._position, len(b))
        n = len(chunk)
        b[:n] = chunk
        self._position += n
        return n

    def tell(self) -> int:
        return self._position
