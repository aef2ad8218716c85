"""Unit tests for the DCA1 container codec."""

import io
import json
import struct
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from test_helpers import raw_artifact
from trackcache.container import (
    MAGIC,
    PREFIX_SIZE,
    ArtifactHeader,
    decode_header,
    encode_header,
    read_artifact_header,
)
from trackcache.errors import InvalidContainer
from trackcache.stream import TrackMetadata

MINIMAL_HEADER = {"dca": {"version": 1}, "opus": {"channels": 2}}


class TestEncodeHeader:
    """Test the byte layout produced by encode_header."""

    def test_layout_is_magic_length_json(self, metadata) -> None:
        """Test output is magic, LE int32 length, then compact JSON."""
        encoded = encode_header(ArtifactHeader.from_metadata(metadata))

        assert encoded[:4] == MAGIC
        (length,) = struct.unpack("<i", encoded[4:8])
        assert length == len(encoded) - PREFIX_SIZE

        data = json.loads(encoded[PREFIX_SIZE:])
        assert data["dca"]["version"] == 1
        assert data["opus"]["channels"] == 2
        assert data["extra"]["duration"] == 300_000
        assert encoded[PREFIX_SIZE:] == json.dumps(
            data, separators=(",", ":")
        ).encode()

    def test_absent_optionals_are_null(self) -> None:
        """Test missing info is written as JSON null."""
        header = ArtifactHeader.from_metadata(TrackMetadata(channels=1))
        data = json.loads(encode_header(header)[PREFIX_SIZE:])

        assert data["info"] is None
        assert data["extra"] == {"date": None, "duration": None, "thumbnail": None}

    def test_non_ascii_text_is_utf8(self) -> None:
        """Test the declared length counts UTF-8 bytes, not characters."""
        header = ArtifactHeader.from_metadata(
            TrackMetadata(title="Café ☕", channels=2)
        )
        encoded = encode_header(header)
        (length,) = struct.unpack("<i", encoded[4:8])

        assert length == len(encoded) - PREFIX_SIZE
        assert decode_header(io.BytesIO(encoded)).info.title == "Café ☕"


class TestRoundTrip:
    """Test encode_header followed by decode_header."""

    def test_full_metadata_round_trip(self, metadata) -> None:
        """Test a header with every field set survives a round trip."""
        header = ArtifactHeader.from_metadata(metadata)
        assert decode_header(io.BytesIO(encode_header(header))) == header

    def test_minimal_metadata_round_trip(self) -> None:
        """Test a header with only a channel count survives a round trip."""
        header = ArtifactHeader.from_metadata(TrackMetadata(channels=1))
        decoded = decode_header(io.BytesIO(encode_header(header)))

        assert decoded == header
        assert decoded.info is None
        assert decoded.origin.url is None

    def test_reader_left_at_payload(self, metadata) -> None:
        """Test decoding stops exactly at the first payload byte."""
        encoded = encode_header(ArtifactHeader.from_metadata(metadata))
        reader = io.BytesIO(encoded + b"OPUS")

        decode_header(reader)

        assert reader.tell() == len(encoded)
        assert reader.read() == b"OPUS"


class TestInvalidContainer:
    """Test decode_header rejects malformed artifacts."""

    def test_bad_magic_reads_only_magic(self) -> None:
        """Test a foreign file is rejected after its first four bytes."""
        reader = io.BytesIO(b"RIFF\x24\x00\x00\x00WAVEfmt ")

        with pytest.raises(InvalidContainer, match="Bad magic"):
            decode_header(reader)
        assert reader.tell() == 4

    def test_empty_and_short_files(self) -> None:
        """Test files shorter than the magic tag are rejected."""
        for data in (b"", b"DC", b"DCA"):
            with pytest.raises(InvalidContainer):
                decode_header(io.BytesIO(data))

    def test_missing_length(self) -> None:
        """Test a file ending inside the length field is rejected."""
        with pytest.raises(InvalidContainer, match="truncated"):
            decode_header(io.BytesIO(MAGIC + b"\x10\x00"))

    @pytest.mark.parametrize("length", [-1, 0, 1, 2**31 - 1])
    def test_length_out_of_range(self, length) -> None:
        """Test declared lengths below the minimum or absurdly large are rejected."""
        data = raw_artifact(MINIMAL_HEADER, length=length)
        with pytest.raises(InvalidContainer, match="out of range"):
            decode_header(io.BytesIO(data))

    def test_truncated_header(self) -> None:
        """Test a header region shorter than declared is not parsed."""
        text = json.dumps(MINIMAL_HEADER).encode()
        data = raw_artifact(text, length=len(text) + 50)

        with pytest.raises(InvalidContainer, match="Header truncated"):
            decode_header(io.BytesIO(data))

    def test_declared_length_too_short_for_text(self) -> None:
        """Test a length cutting the JSON short is reported as malformed."""
        text = json.dumps(MINIMAL_HEADER).encode()
        data = raw_artifact(text, length=len(text) - 1)

        with pytest.raises(InvalidContainer, match="not valid JSON"):
            decode_header(io.BytesIO(data))

    def test_malformed_json(self) -> None:
        """Test header text that is not JSON is rejected."""
        with pytest.raises(InvalidContainer, match="not valid JSON"):
            decode_header(io.BytesIO(raw_artifact(b"{not json")))

    def test_invalid_utf8(self) -> None:
        """Test header bytes that are not UTF-8 are rejected."""
        with pytest.raises(InvalidContainer):
            decode_header(io.BytesIO(raw_artifact(b"\xff\xfe\xfd")))

    def test_json_array(self) -> None:
        """Test a JSON document that is not an object is rejected."""
        with pytest.raises(InvalidContainer, match="JSON object"):
            decode_header(io.BytesIO(raw_artifact([1, 2, 3])))


class TestSchemaCompatibility:
    """Test field-level defaults and version handling."""

    def test_minimal_header_uses_defaults(self) -> None:
        """Test absent optional sections and encoder fields get defaults."""
        header = decode_header(io.BytesIO(raw_artifact(MINIMAL_HEADER)))

        assert header.opus.channels == 2
        assert header.opus.sample_rate == 48_000
        assert header.opus.frame_size == 960
        assert header.opus.abr == 128_000
        assert header.info is None
        assert header.origin is None
        assert header.extra.duration is None

    def test_unknown_fields_ignored(self) -> None:
        """Test keys added by newer writers are ignored."""
        data = {
            "dca": {"version": 1, "tool": {"name": "other", "license": "MIT"}},
            "opus": {"channels": 1, "sample_rate": 24_000, "complexity": 10},
            "extra": {"duration": 1000, "bpm": 120},
            "chapters": [],
        }
        header = decode_header(io.BytesIO(raw_artifact(data)))

        assert header.tool.name == "other"
        assert header.opus.sample_rate == 24_000
        assert header.extra.duration == 1000

    @pytest.mark.parametrize(
        "dca", [None, {}, {"version": 0}, {"version": 2}, {"version": "1"}]
    )
    def test_unsupported_version(self, dca) -> None:
        """Test headers from other format versions are rejected."""
        data = {"opus": {"channels": 2}}
        if dca is not None:
            data["dca"] = dca

        with pytest.raises(InvalidContainer):
            decode_header(io.BytesIO(raw_artifact(data)))

    def test_missing_channels(self) -> None:
        """Test a header without a channel count is rejected."""
        data = {"dca": {"version": 1}, "opus": {"sample_rate": 48_000}}
        with pytest.raises(InvalidContainer, match="channels"):
            decode_header(io.BytesIO(raw_artifact(data)))

    def test_missing_opus_section(self) -> None:
        """Test a header without an encoder descriptor is rejected."""
        with pytest.raises(InvalidContainer, match="opus"):
            decode_header(io.BytesIO(raw_artifact({"dca": {"version": 1}})))

    def test_wrong_field_type(self) -> None:
        """Test a field of the wrong JSON type is rejected."""
        data = {
            "dca": {"version": 1},
            "opus": {"channels": 2},
            "extra": {"duration": "five minutes"},
        }
        with pytest.raises(InvalidContainer, match="duration"):
            decode_header(io.BytesIO(raw_artifact(data)))

    def test_boolean_is_not_a_number(self) -> None:
        """Test JSON booleans are not accepted for numeric fields."""
        data = {"dca": {"version": 1}, "opus": {"channels": True}}
        with pytest.raises(InvalidContainer):
            decode_header(io.BytesIO(raw_artifact(data)))


class TestReadArtifactHeader:
    """Test reading headers straight from files."""

    def test_returns_header_and_offset(self, tmp_path, metadata) -> None:
        """Test the payload offset points just past the header."""
        encoded = encode_header(ArtifactHeader.from_metadata(metadata))
        path = tmp_path / "artifact"
        path.write_bytes(encoded + b"payload")

        header, offset = read_artifact_header(path)

        assert header.opus.channels == 2
        assert offset == len(encoded)
        assert path.read_bytes()[offset:] == b"payload"

    def test_missing_file(self, tmp_path) -> None:
        """Test a missing file raises OSError, not InvalidContainer."""
        with pytest.raises(FileNotFoundError):
            read_artifact_header(tmp_path / "missing")
