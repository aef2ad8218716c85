"""Binary container codec for cached artifacts.

Layout::

    MAGIC[4] || LEN[4, little-endian int32] || HEADER[LEN, JSON] || PAYLOAD
"""

import json
import logging
import struct
from pathlib import Path
from typing import BinaryIO

from ..errors import InvalidContainer
from .header import ArtifactHeader

logger = logging.getLogger(__name__)

MAGIC = b"DCA1"
MIN_HEADER_LEN = len(b"{}")
MAX_HEADER_LEN = 1 << 20

_LENGTH = struct.Struct("<i")
PREFIX_SIZE = len(MAGIC) + _LENGTH.size


def encode_header(header: ArtifactHeader) -> bytes:
    """Serialize a header with its magic tag and length prefix.

    Args:
        header: Header to serialize

    Returns:
        Bytes to write at the very start of the artifact file
    """
    text = json.dumps(
        header.to_dict(), separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")
    return MAGIC + _LENGTH.pack(len(text)) + text


def _read_exact(reader: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def decode_header(reader: BinaryIO) -> ArtifactHeader:
    """Parse the header from the front of an artifact stream.

    On success the reader is left positioned at the first payload byte.
    On a bad magic tag nothing past the first four bytes is consumed.

    Args:
        reader: Binary stream positioned at the start of the artifact

    Returns:
        Decoded artifact header

    Raises:
        InvalidContainer: If the magic tag, declared length or header
            text is invalid, or the file is truncated
    """
    magic = _read_exact(reader, len(MAGIC))
    if magic != MAGIC:
        raise InvalidContainer(f"Bad magic tag {magic!r}, expected {MAGIC!r}")

    raw_length = _read_exact(reader, _LENGTH.size)
    if len(raw_length) != _LENGTH.size:
        raise InvalidContainer("Artifact truncated before header length")
    (length,) = _LENGTH.unpack(raw_length)
    if not MIN_HEADER_LEN <= length <= MAX_HEADER_LEN:
        raise InvalidContainer(f"Declared header length {length} is out of range")

    text = _read_exact(reader, length)
    if len(text) != length:
        raise InvalidContainer(
            f"Header truncated: declared {length} bytes, found {len(text)}"
        )

    try:
        data = json.loads(text.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidContainer(f"Header is not valid JSON: {e}", e) from e
    if not isinstance(data, dict):
        raise InvalidContainer("Header must be a JSON object")

    return ArtifactHeader.from_dict(data)


def read_artifact_header(path: Path) -> tuple[ArtifactHeader, int]:
    """Decode the header of an artifact file.

    Returns:
        Tuple of (header, payload_offset)

    Raises:
        InvalidContainer: If the file is not a valid artifact
        OSError: If the file cannot be read
    """
    with open(path, "rb") as f:
        header = decode_header(f)
        offset = f.tell()
    logger.debug(f"Decoded header of {path} ({offset} bytes)")
    return header, offset
