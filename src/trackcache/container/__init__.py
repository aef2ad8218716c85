"""DCA1 container format for cached audio artifacts."""

from .codec import (
    MAGIC,
    PREFIX_SIZE,
    decode_header,
    encode_header,
    read_artifact_header,
)
from .header import FORMAT_VERSION, ArtifactHeader, EncoderSettings

__all__ = [
    "FORMAT_VERSION",
    "MAGIC",
    "PREFIX_SIZE",
    "ArtifactHeader",
    "EncoderSettings",
    "decode_header",
    "encode_header",
    "read_artifact_header",
]
