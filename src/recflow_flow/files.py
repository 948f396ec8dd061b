"""Path-based operations for tagged-envelope records.

Blocking functions run to completion on the calling thread. The ``_async``
twins suspend only around the file read and the file write; encoding,
decoding, resolution and checksums run inline.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from recflow_codec import Codec, get_codec
from recflow_core.config import FlowConfig, default_config
from recflow_core.layout import encode_envelope, resolve_envelope
from recflow_core.resolver import Resolution
from recflow_core.schema import FILE, NONBLOCKING, schema_of

from .storage import DEFAULT_STORAGE, FileStorage
from .writer import writer_for

logger = logging.getLogger(__name__)


def resolve_codec(codec: Codec | str | None, config: FlowConfig | None = None) -> Codec:
    if codec is None:
        codec = (config or default_config()).codec
    if isinstance(codec, str):
        return get_codec(codec)
    return codec


# ---- Blocking ----
def load_resolution(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> Resolution:
    schema_of(record_type).require(FILE)
    data = (storage or DEFAULT_STORAGE).read(path)
    resolution = resolve_envelope(record_type, data, resolve_codec(codec, config))
    logger.debug("Loaded %s from %s (%s)", record_type.__name__, path, resolution.state.value)
    return resolution


def load_from_path(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> Any:
    return load_resolution(record_type, path, codec, storage=storage, config=config).value


def save_to_path(
    obj: Any,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    schema = schema_of(type(obj))
    schema.require(FILE)
    data = encode_envelope(obj, resolve_codec(codec, config))
    writer_for(schema, storage, config).write(path, data)


def load_and_migrate(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> Any:
    """Load, and if the stored variant was a prior one, rewrite it under the current tag."""
    codec = resolve_codec(codec, config)
    resolution = load_resolution(record_type, path, codec, storage=storage)
    if resolution.migrated:
        save_to_path(resolution.value, path, codec, storage=storage, config=config)
        logger.info("Migrated %s at %s from tag %d to %d",
                    record_type.__name__, path, resolution.source_tag, schema_of(record_type).tag)
    return resolution.value


def migrate(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    load_and_migrate(record_type, path, codec, storage=storage, config=config)


# ---- Non-blocking ----
async def load_resolution_async(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> Resolution:
    schema_of(record_type).require(NONBLOCKING)
    data = await (storage or DEFAULT_STORAGE).read_async(path)
    resolution = resolve_envelope(record_type, data, resolve_codec(codec, config))
    logger.debug("Loaded %s from %s (%s)", record_type.__name__, path, resolution.state.value)
    return resolution


async def load_from_path_async(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> Any:
    resolution = await load_resolution_async(record_type, path, codec, storage=storage, config=config)
    return resolution.value


async def save_to_path_async(
    obj: Any,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    schema = schema_of(type(obj))
    schema.require(NONBLOCKING)
    data = encode_envelope(obj, resolve_codec(codec, config))
    await writer_for(schema, storage, config).write_async(path, data)


async def load_and_migrate_async(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> Any:
    codec = resolve_codec(codec, config)
    resolution = await load_resolution_async(record_type, path, codec, storage=storage, config=config)
    if resolution.migrated:
        await save_to_path_async(resolution.value, path, codec, storage=storage, config=config)
        logger.info("Migrated %s at %s from tag %d to %d",
                    record_type.__name__, path, resolution.source_tag, schema_of(record_type).tag)
    return resolution.value


async def migrate_async(
    record_type: type,
    path: str | Path,
    codec: Codec | str | None = None,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    await load_and_migrate_async(record_type, path, codec, storage=storage, config=config)
