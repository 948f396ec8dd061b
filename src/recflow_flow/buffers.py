"""In-memory operations for tagged-envelope records. No I/O."""
from __future__ import annotations

from typing import Any

from recflow_codec import Codec
from recflow_core.layout import decode_envelope, encode_envelope, resolve_envelope
from recflow_core.resolver import Resolution
from recflow_core.schema import MEMORY, schema_of

from .files import resolve_codec


def encode(obj: Any, codec: Codec | str | None = None) -> bytes:
    schema_of(type(obj)).require(MEMORY)
    return encode_envelope(obj, resolve_codec(codec))


def decode(record_type: type, data: bytes, codec: Codec | str | None = None) -> Any:
    schema_of(record_type).require(MEMORY)
    return decode_envelope(record_type, data, resolve_codec(codec))


def resolve_bytes(record_type: type, data: bytes, codec: Codec | str | None = None) -> Resolution:
    schema_of(record_type).require(MEMORY)
    return resolve_envelope(record_type, data, resolve_codec(codec))


def decode_and_migrate(
    record_type: type, data: bytes, codec: Codec | str | None = None
) -> tuple[Any, bytes]:
    """Decode, returning the value and bytes that carry the current tag.

    The input bytes are returned as-is when they already carry it.
    """
    codec = resolve_codec(codec)
    resolution = resolve_bytes(record_type, data, codec)
    if resolution.migrated:
        return resolution.value, encode_envelope(resolution.value, codec)
    return resolution.value, bytes(data)


def migrate(record_type: type, data: bytes, codec: Codec | str | None = None) -> bytes:
    _, current = decode_and_migrate(record_type, data, codec)
    return current
