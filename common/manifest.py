"""Chunk manifest wire format (JSON, optionally gzip-compressed)."""

import gzip
import json
import zlib
from dataclasses import dataclass, field
from typing import List

from common.constants import GZIP_MAGIC
from common.exceptions import ManifestDecodeError, ManifestEncodeError


@dataclass
class ChunkRecord:
    """Placement of one physical chunk within the logical file."""
    fid: str
    offset: int
    size: int

    def to_dict(self) -> dict:
        return {'fid': self.fid, 'offset': self.offset, 'size': self.size}

    @classmethod
    def from_dict(cls, obj: dict) -> 'ChunkRecord':
        if not isinstance(obj, dict):
            raise ManifestDecodeError(f"Chunk record must be an object, got {type(obj).__name__}")
        fid = obj.get('fid', '')
        offset = obj.get('offset', 0)
        size = obj.get('size', 0)
        if not isinstance(fid, str):
            raise ManifestDecodeError(f"Chunk fid must be a string, got {fid!r}")
        for key, value in (('offset', offset), ('size', size)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ManifestDecodeError(f"Chunk {key} must be a non-negative integer, got {value!r}")
        return cls(fid=fid, offset=offset, size=size)


@dataclass
class ChunkManifest:
    """
    Describes how a logical file maps onto an ordered list of chunk objects.

    Attributes:
        name: Base name of the logical file
        mime: MIME type of the logical file
        size: Total size in bytes, equal to the sum of chunk sizes
        chunks: Chunk records, sorted by offset once decoded
    """
    name: str = ''
    mime: str = ''
    size: int = 0
    chunks: List[ChunkRecord] = field(default_factory=list)

    @property
    def fids(self) -> List[str]:
        return [chunk.fid for chunk in self.chunks]

    def to_dict(self) -> dict:
        """Structural form with empty fields omitted."""
        obj = {}
        if self.name:
            obj['name'] = self.name
        if self.mime:
            obj['mime'] = self.mime
        if self.size:
            obj['size'] = self.size
        if self.chunks:
            obj['chunks'] = [chunk.to_dict() for chunk in self.chunks]
        return obj

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return encode_manifest(self)

    @classmethod
    def from_json(cls, data: bytes, is_compressed: bool = False) -> 'ChunkManifest':
        """Deserialize from JSON bytes."""
        return decode_manifest(data, is_compressed)


def is_gzip_data(data: bytes) -> bool:
    return data[:2] == GZIP_MAGIC


def encode_manifest(manifest: ChunkManifest, compress: bool = False) -> bytes:
    """
    Serialize a manifest to its wire form.

    Args:
        manifest: Manifest to encode
        compress: Gzip the JSON payload

    Returns:
        Encoded manifest bytes

    Raises:
        ManifestEncodeError: If a field cannot be represented as JSON
    """
    try:
        payload = json.dumps(manifest.to_dict(), separators=(',', ':')).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise ManifestEncodeError(f"Cannot encode manifest {manifest.name!r}: {e}") from e
    if compress:
        payload = gzip.compress(payload)
    return payload


def decode_manifest(data: bytes, is_compressed: bool = False) -> ChunkManifest:
    """
    Parse a manifest from its wire form.

    Chunks are returned sorted by ascending offset whatever their wire order.

    Args:
        data: Encoded manifest bytes
        is_compressed: Payload is gzip-compressed

    Returns:
        Decoded ChunkManifest

    Raises:
        ManifestDecodeError: If decompression or parsing fails
    """
    if is_compressed:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise ManifestDecodeError(f"Cannot decompress manifest: {e}") from e

    try:
        obj = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestDecodeError(f"Malformed manifest JSON: {e}") from e

    if not isinstance(obj, dict):
        raise ManifestDecodeError(f"Manifest must be a JSON object, got {type(obj).__name__}")

    raw_chunks = obj.get('chunks') or []
    if not isinstance(raw_chunks, list):
        raise ManifestDecodeError("Manifest 'chunks' must be a list")

    size = obj.get('size', 0)
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        raise ManifestDecodeError(f"Manifest size must be a non-negative integer, got {size!r}")

    for key in ('name', 'mime'):
        value = obj.get(key)
        if value is not None and not isinstance(value, str):
            raise ManifestDecodeError(f"Manifest {key} must be a string, got {value!r}")

    chunks = [ChunkRecord.from_dict(item) for item in raw_chunks]
    chunks.sort(key=lambda chunk: chunk.offset)

    return ChunkManifest(
        name=obj.get('name') or '',
        mime=obj.get('mime') or '',
        size=size,
        chunks=chunks,
    )
