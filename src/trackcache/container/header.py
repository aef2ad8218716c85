"""Structured artifact header (DCA1 JSON metadata).

Every cached artifact starts with a JSON document describing the Opus
encoder settings of the payload that follows, plus optional track info,
origin and free-form extras. Field names match the DCA1 layout so the files
stay readable by other DCA tools.
"""

from dataclasses import dataclass, field
from typing import Any

from .. import __version__
from ..errors import InvalidContainer
from ..stream import TrackMetadata

FORMAT_VERSION = 1

TOOL_NAME = "trackcache"
TOOL_AUTHOR = "trackcache"


@dataclass(frozen=True)
class EncoderSettings:
    """Opus encoder parameters recorded in every header."""

    mode: str = "music"
    bitrate: int = 128_000
    frame_size: int = 960
    default_sample_rate: int = 48_000
    vbr: int = 1


_DEFAULT_ENCODER = EncoderSettings()


def _section(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidContainer(f"Header section '{key}' must be an object")
    return value


def _field(data: dict[str, Any], key: str, kind: type, default: Any = None) -> Any:
    value = data.get(key)
    if value is None:
        return default
    # bool is a subclass of int, reject it for numeric fields
    if isinstance(value, bool) or not isinstance(value, kind):
        raise InvalidContainer(
            f"Header field '{key}' has unexpected type {type(value).__name__}"
        )
    return value


@dataclass
class Tool:
    name: str = TOOL_NAME
    version: str = __version__
    url: str = ""
    author: str = TOOL_AUTHOR

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "url": self.url,
            "author": self.author,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tool":
        return cls(
            name=_field(data, "name", str, ""),
            version=_field(data, "version", str, ""),
            url=_field(data, "url", str, ""),
            author=_field(data, "author", str, ""),
        )


@dataclass
class Opus:
    """Encoder descriptor: how the payload was produced."""

    channels: int
    sample_rate: int = _DEFAULT_ENCODER.default_sample_rate
    mode: str = _DEFAULT_ENCODER.mode
    frame_size: int = _DEFAULT_ENCODER.frame_size
    abr: int = _DEFAULT_ENCODER.bitrate
    vbr: int = _DEFAULT_ENCODER.vbr

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "sample_rate": self.sample_rate,
            "frame_size": self.frame_size,
            "abr": self.abr,
            "vbr": self.vbr,
            "channels": self.channels,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Opus":
        channels = _field(data, "channels", int)
        if channels is None or channels <= 0:
            raise InvalidContainer("Header is missing a valid opus.channels")
        return cls(
            channels=channels,
            sample_rate=_field(
                data, "sample_rate", int, _DEFAULT_ENCODER.default_sample_rate
            ),
            mode=_field(data, "mode", str, _DEFAULT_ENCODER.mode),
            frame_size=_field(data, "frame_size", int, _DEFAULT_ENCODER.frame_size),
            abr=_field(data, "abr", int, _DEFAULT_ENCODER.bitrate),
            vbr=_field(data, "vbr", int, _DEFAULT_ENCODER.vbr),
        )


@dataclass
class Info:
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    cover: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "genre": self.genre,
            "cover": self.cover,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Info":
        return cls(**{key: _field(data, key, str) for key in cls.__dataclass_fields__})


@dataclass
class Origin:
    source: str | None = None
    abr: int | None = None
    channels: int | None = None
    encoding: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "abr": self.abr,
            "channels": self.channels,
            "encoding": self.encoding,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Origin":
        return cls(
            source=_field(data, "source", str),
            abr=_field(data, "abr", int),
            channels=_field(data, "channels", int),
            encoding=_field(data, "encoding", str),
            url=_field(data, "url", str),
        )


@dataclass
class Extra:
    """Free-form fields folded back into playback metadata on read."""

    date: str | None = None
    duration: int | None = None  # milliseconds
    thumbnail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "duration": self.duration,
            "thumbnail": self.thumbnail,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Extra":
        return cls(
            date=_field(data, "date", str),
            duration=_field(data, "duration", int),
            thumbnail=_field(data, "thumbnail", str),
        )


@dataclass
class ArtifactHeader:
    """Structured record stored at the front of every cached artifact.

    Attributes:
        opus: Encoder descriptor; must describe the payload that follows
        info: Optional title/artist record
        origin: Optional description of where the audio came from
        extra: Date, duration (ms) and thumbnail of the original stream
        version: Container format version
        tool: Descriptor of the program that wrote the file
    """

    opus: Opus
    info: Info | None = None
    origin: Origin | None = None
    extra: Extra = field(default_factory=Extra)
    version: int = FORMAT_VERSION
    tool: Tool = field(default_factory=Tool)

    @classmethod
    def from_metadata(
        cls, metadata: TrackMetadata, encoder: EncoderSettings = _DEFAULT_ENCODER
    ) -> "ArtifactHeader":
        """Build the header for a finished stream.

        Raises:
            ValueError: If the metadata does not carry a channel count
        """
        if metadata.channels is None:
            raise ValueError("Cannot build a header without a channel count")

        info = None
        if metadata.title is not None or metadata.artist is not None:
            info = Info(title=metadata.title, artist=metadata.artist)

        return cls(
            opus=Opus(
                channels=metadata.channels,
                sample_rate=metadata.sample_rate or encoder.default_sample_rate,
                mode=encoder.mode,
                frame_size=encoder.frame_size,
                abr=encoder.bitrate,
                vbr=encoder.vbr,
            ),
            info=info,
            origin=Origin(source="file", url=metadata.source_url),
            extra=Extra(
                date=metadata.date,
                duration=metadata.duration_ms,
                thumbnail=metadata.thumbnail,
            ),
        )

    def to_metadata(self, source_key: str | None = None) -> TrackMetadata:
        """Reconstruct the playback metadata a fresh fetch would have produced.

        Args:
            source_key: Lookup key, used when the header has no origin URL
        """
        info = self.info or Info()
        origin_url = self.origin.url if self.origin else None
        return TrackMetadata(
            title=info.title,
            artist=info.artist,
            date=self.extra.date,
            duration_ms=self.extra.duration,
            sample_rate=self.opus.sample_rate,
            channels=self.opus.channels,
            source_url=origin_url or source_key,
            thumbnail=self.extra.thumbnail,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dca": {"version": self.version, "tool": self.tool.to_dict()},
            "opus": self.opus.to_dict(),
            "info": self.info.to_dict() if self.info else None,
            "origin": self.origin.to_dict() if self.origin else None,
            "extra": self.extra.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArtifactHeader":
        """Parse a decoded JSON header.

        Unknown keys are ignored and absent optional sections become None.

        Raises:
            InvalidContainer: If required sections are missing, a field has
                the wrong type, or the format version is not supported
        """
        dca = _section(data, "dca")
        if dca is None:
            raise InvalidContainer("Header is missing the 'dca' section")
        version = _field(dca, "version", int)
        if version != FORMAT_VERSION:
            raise InvalidContainer(
                f"Unsupported container version {version!r}, expected {FORMAT_VERSION}"
            )

        opus = _section(data, "opus")
        if opus is None:
            raise InvalidContainer("Header is missing the 'opus' section")

        tool = _section(dca, "tool")
        info = _section(data, "info")
        origin = _section(data, "origin")
        extra = _section(data, "extra")

        return cls(
            opus=Opus.from_dict(opus),
            info=Info.from_dict(info) if info is not None else None,
            origin=Origin.from_dict(origin) if origin is not None else None,
            extra=Extra.from_dict(extra) if extra is not None else Extra(),
            version=version,
            tool=Tool.from_dict(tool) if tool is not None else Tool(),
        )
