"""Operations for prefixed-archive records.

Loads return an ArchiveHandle over the stored bytes. A prior variant is
deserialized, converted, and re-archived in memory; only load_and_migrate
and migrate write the converted archive back.
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

from recflow_codec.archive import ArchiveHandle, ArrowArchive
from recflow_core.config import FlowConfig
from recflow_core.layout import encode_prefixed, split_prefixed
from recflow_core.resolver import Resolution, resolve
from recflow_core.schema import FILE, MEMORY, NONBLOCKING, Schema, schema_of

from .storage import DEFAULT_STORAGE, FileStorage
from .writer import writer_for

logger = logging.getLogger(__name__)


def _encode(schema: Schema, obj: Any) -> bytes:
    return encode_prefixed(schema.tag, ArrowArchive(schema.record_type).serialize(obj))


def resolve_stored(record_type: type, data: bytes) -> Resolution:
    """Resolution for stored archive bytes; no operation-family checks."""
    schema = schema_of(record_type)
    tag, payload = split_prefixed(data)

    def materialize(target: type):
        handle = ArchiveHandle.validate(target, payload)
        return handle if target is record_type else handle.deserialize()

    resolution = resolve(schema, tag, materialize)
    if resolution.migrated:
        archived = ArrowArchive(record_type).serialize(resolution.value)
        resolution = dataclasses.replace(resolution, value=ArchiveHandle.validate(record_type, archived))
    return resolution


def _current_bytes(schema: Schema, handle: ArchiveHandle) -> bytes:
    return encode_prefixed(schema.tag, handle.to_bytes())


# ---- In memory ----
def encode(obj: Any) -> bytes:
    schema = schema_of(type(obj))
    schema.require(MEMORY, zerocopy=True)
    return _encode(schema, obj)


def resolve_archive(record_type: type, data: bytes) -> Resolution:
    schema_of(record_type).require(MEMORY, zerocopy=True)
    return resolve_stored(record_type, data)


def decode(record_type: type, data: bytes) -> ArchiveHandle:
    return resolve_archive(record_type, data).value


# ---- Blocking ----
def load_resolution(record_type: type, path: str | Path, *, storage: FileStorage | None = None) -> Resolution:
    schema_of(record_type).require(FILE, zerocopy=True)
    resolution = resolve_stored(record_type, (storage or DEFAULT_STORAGE).read(path))
    logger.debug("Loaded %s archive from %s (%s)", record_type.__name__, path, resolution.state.value)
    return resolution


def load_from_path(record_type: type, path: str | Path, *, storage: FileStorage | None = None) -> ArchiveHandle:
    return load_resolution(record_type, path, storage=storage).value


def save_to_path(
    obj: Any,
    path: str | Path,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    schema = schema_of(type(obj))
    schema.require(FILE, zerocopy=True)
    writer_for(schema, storage, config).write(path, _encode(schema, obj))


def load_and_migrate(
    record_type: type,
    path: str | Path,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> ArchiveHandle:
    resolution = load_resolution(record_type, path, storage=storage)
    if resolution.migrated:
        schema = schema_of(record_type)
        writer_for(schema, storage, config).write(path, _current_bytes(schema, resolution.value))
        logger.info("Migrated %s archive at %s from tag %d to %d",
                    record_type.__name__, path, resolution.source_tag, schema.tag)
    return resolution.value


def migrate(
    record_type: type,
    path: str | Path,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    load_and_migrate(record_type, path, storage=storage, config=config)


# ---- Non-blocking ----
async def load_resolution_async(
    record_type: type, path: str | Path, *, storage: FileStorage | None = None
) -> Resolution:
    schema_of(record_type).require(NONBLOCKING, zerocopy=True)
    data = await (storage or DEFAULT_STORAGE).read_async(path)
    resolution = resolve_stored(record_type, data)
    logger.debug("Loaded %s archive from %s (%s)", record_type.__name__, path, resolution.state.value)
    return resolution


async def load_from_path_async(
    record_type: type, path: str | Path, *, storage: FileStorage | None = None
) -> ArchiveHandle:
    resolution = await load_resolution_async(record_type, path, storage=storage)
    return resolution.value


async def save_to_path_async(
    obj: Any,
    path: str | Path,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    schema = schema_of(type(obj))
    schema.require(NONBLOCKING, zerocopy=True)
    await writer_for(schema, storage, config).write_async(path, _encode(schema, obj))


async def load_and_migrate_async(
    record_type: type,
    path: str | Path,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> ArchiveHandle:
    resolution = await load_resolution_async(record_type, path, storage=storage)
    if resolution.migrated:
        schema = schema_of(record_type)
        await writer_for(schema, storage, config).write_async(path, _current_bytes(schema, resolution.value))
        logger.info("Migrated %s archive at %s from tag %d to %d",
                    record_type.__name__, path, resolution.source_tag, schema.tag)
    return resolution.value


async def migrate_async(
    record_type: type,
    path: str | Path,
    *,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> None:
    await load_and_migrate_async(record_type, path, storage=storage, config=config)
