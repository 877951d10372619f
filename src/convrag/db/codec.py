"""Encoding of vectors and document metadata for SQLite storage.

Vectors are stored as little-endian float32 blobs. Metadata is stored as a
versioned JSON envelope so the layout can evolve without breaking existing
rows.
"""

import json
from typing import Any

import numpy as np
from pydantic import BaseModel, ValidationError

from convrag.db.connection import StorageError

VECTOR_DTYPE = np.dtype("<f4")
METADATA_VERSION = 1


class CorruptVectorError(StorageError):
    """Raised when a stored vector blob cannot be decoded."""

    pass


class MetadataDecodeError(StorageError):
    """Raised when stored document metadata cannot be decoded."""

    pass


class MetadataEnvelope(BaseModel):
    """Versioned wrapper around document metadata fields."""

    v: int
    fields: dict[str, str]


def encode_vector(vector: Any) -> bytes:
    """Encode a vector as a little-endian float32 blob."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def decode_vector(blob: bytes, dimension: int | None = None) -> np.ndarray:
    """Decode a float32 blob into a vector.

    Args:
        blob: Raw bytes from the embedding column.
        dimension: Recorded dimension; checked against the decoded length.

    Returns:
        1-D float32 array.

    Raises:
        CorruptVectorError: If the blob length is not a multiple of 4 or does
            not match the recorded dimension.
    """
    if len(blob) % VECTOR_DTYPE.itemsize != 0:
        raise CorruptVectorError(f"Vector blob length {len(blob)} is not a multiple of 4")
    vector = np.frombuffer(blob, dtype=VECTOR_DTYPE).astype(np.float32)
    if dimension is not None and vector.shape[0] != dimension:
        raise CorruptVectorError(
            f"Vector blob holds {vector.shape[0]} values, recorded dimension is {dimension}"
        )
    return vector


def encode_metadata(fields: dict[str, str]) -> str:
    """Serialize metadata fields into the current envelope."""
    envelope = MetadataEnvelope(v=METADATA_VERSION, fields=fields)
    return envelope.model_dump_json()


def decode_metadata(raw: str | None) -> dict[str, str]:
    """Deserialize stored metadata.

    Accepts the versioned envelope and bare JSON maps written before the
    envelope existed (treated as version 0).

    Raises:
        MetadataDecodeError: If the value is not valid JSON or has the wrong
            shape.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MetadataDecodeError(f"Metadata is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MetadataDecodeError(f"Metadata must be an object, got {type(data).__name__}")

    if "v" in data and "fields" in data:
        try:
            envelope = MetadataEnvelope.model_validate(data)
        except ValidationError as e:
            raise MetadataDecodeError(f"Invalid metadata envelope: {e}") from e
        if envelope.v > METADATA_VERSION:
            raise MetadataDecodeError(f"Unsupported metadata version {envelope.v}")
        return dict(envelope.fields)

    # Version 0: a bare string map
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in data.items()):
        raise MetadataDecodeError("Version 0 metadata must map strings to strings")
    return dict(data)
