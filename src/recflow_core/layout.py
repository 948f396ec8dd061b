"""Versioned record layouts.

Tagged envelope (general codecs):
    codec({"flow_id": tag, <field>: <value>, ...})

Prefixed archive (zero-copy codec):
    [Tag(2, little-endian)] [archive bytes ...]
"""
from __future__ import annotations

import dataclasses
import functools
import logging
import struct
import types
import typing
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .errors import FormatInvalid, ParsingFailed
from .protocol import ENVELOPE_TAG_FIELD, MAX_TAG, TAG_FMT, TAG_LEN
from .resolver import Resolution, resolve
from .schema import schema_of

if TYPE_CHECKING:
    from recflow_codec.base import Codec

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=None)
def field_hints(record_type: type) -> dict[str, Any]:
    return typing.get_type_hints(record_type)


def to_fields(obj: Any) -> dict[str, Any]:
    return dataclasses.asdict(obj)


def from_fields(record_type: type, mapping: Any) -> Any:
    """Rebuild ``record_type`` from a decoded field mapping.

    Unknown or missing required fields mean the payload belongs to some
    other schema, which is reported as ParsingFailed.
    """
    if not isinstance(mapping, Mapping):
        raise ParsingFailed(
            f"expected a mapping for {record_type.__name__}, got {type(mapping).__name__}"
        )
    fields = [f for f in dataclasses.fields(record_type) if f.init]
    names = {f.name for f in fields}
    unknown = sorted(str(k) for k in mapping if k not in names)
    if unknown:
        raise ParsingFailed(f"{record_type.__name__} has no fields {unknown}")
    missing = [
        f.name
        for f in fields
        if f.name not in mapping
        and f.default is dataclasses.MISSING
        and f.default_factory is dataclasses.MISSING
    ]
    if missing:
        raise ParsingFailed(f"{record_type.__name__} is missing fields {missing}")

    hints = field_hints(record_type)
    kwargs = {name: rebuild(hints.get(name), value) for name, value in mapping.items()}
    return record_type(**kwargs)


def rebuild(hint: Any, value: Any) -> Any:
    """Restore the dataclasses ``hint`` describes inside a decoded plain value.

    Walks lists, dict values and Optional. Maps may arrive as key/value pairs.
    """
    if value is None or hint is None:
        return value
    if dataclasses.is_dataclass(hint):
        return from_fields(hint, value) if isinstance(value, Mapping) else value
    origin = typing.get_origin(hint)
    args = typing.get_args(hint)
    if origin is list and len(args) == 1 and isinstance(value, list):
        return [rebuild(args[0], item) for item in value]
    if origin is dict and len(args) == 2 and isinstance(value, (Mapping, list)):
        try:
            items = value.items() if isinstance(value, Mapping) else value
            return {k: rebuild(args[1], v) for k, v in items}
        except (TypeError, ValueError) as e:
            raise ParsingFailed(f"expected key/value pairs for {hint}: {e}") from e
    if origin in (typing.Union, types.UnionType):
        present = [a for a in args if a is not type(None)]
        if len(present) == 1:
            return rebuild(present[0], value)
    return value


# ---- Tagged envelope ----
def encode_envelope(obj: Any, codec: Codec) -> bytes:
    schema = schema_of(type(obj))
    envelope = {ENVELOPE_TAG_FIELD: schema.tag}
    envelope.update(to_fields(obj))
    data = codec.serialize(envelope)
    logger.debug("Encoded %s (tag %d): %d bytes", schema.name, schema.tag, len(data))
    return data


def _envelope_tag(envelope: Any) -> int:
    if not isinstance(envelope, Mapping) or ENVELOPE_TAG_FIELD not in envelope:
        raise ParsingFailed(f"record carries no '{ENVELOPE_TAG_FIELD}'")
    tag = envelope[ENVELOPE_TAG_FIELD]
    if isinstance(tag, bool) or not isinstance(tag, int) or not 0 <= tag <= MAX_TAG:
        raise ParsingFailed(f"'{ENVELOPE_TAG_FIELD}' is not a 16-bit tag: {tag!r}")
    return tag


def _open_envelope(data: bytes, codec: Codec) -> tuple[int, dict[str, Any]]:
    if len(data) < TAG_LEN:
        raise FormatInvalid(f"{len(data)} bytes cannot hold a tag")
    envelope = codec.deserialize(data)
    tag = _envelope_tag(envelope)
    fields = {k: v for k, v in envelope.items() if k != ENVELOPE_TAG_FIELD}
    return tag, fields


def peek_envelope_tag(data: bytes, codec: Codec) -> int:
    tag, _ = _open_envelope(data, codec)
    return tag


def resolve_envelope(record_type: type, data: bytes, codec: Codec) -> Resolution:
    schema = schema_of(record_type)
    tag, fields = _open_envelope(data, codec)
    return resolve(schema, tag, lambda target: from_fields(target, fields))


def decode_envelope(record_type: type, data: bytes, codec: Codec) -> Any:
    return resolve_envelope(record_type, data, codec).value


# ---- Prefixed archive ----
def encode_prefixed(tag: int, payload: bytes) -> bytes:
    return struct.pack(TAG_FMT, tag) + bytes(payload)


def split_prefixed(data: bytes) -> tuple[int, memoryview]:
    """Split a prefixed archive into its tag and a zero-copy payload view."""
    if len(data) < TAG_LEN:
        raise FormatInvalid(f"{len(data)} bytes cannot hold a tag")
    view = memoryview(data)
    (tag,) = struct.unpack_from(TAG_FMT, view)
    payload = view[TAG_LEN:]
    if not len(payload):
        raise FormatInvalid(f"tag {tag} carries an empty archive")
    return tag, payload
