"""Zero-copy archives over Arrow IPC streams.

An archive is an Arrow IPC stream holding exactly one record batch with one
row, whose schema is derived from the record dataclass. Reading opens the
stream over the caller's buffer, so column buffers point straight into it:
validation reads no payload into Python objects and nothing is copied until a
field is accessed or the whole record is deserialized.

MappedArchive is the writable variant. It maps a file, validates it once,
and lets a callback overwrite field contents in place as long as the byte
layout stays the same.
"""
from __future__ import annotations

import dataclasses
import functools
import logging
import mmap
import os
import struct
import threading
import types
import typing
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable

import pyarrow as pa

from recflow_core.errors import (
    ArchiveBusy,
    EncodingFailed,
    FileNotFound,
    FormatInvalid,
    ParsingFailed,
    StorageError,
)
from recflow_core.layout import field_hints, from_fields, rebuild, to_fields

from .base import Codec

logger = logging.getLogger(__name__)

_SCALARS = {
    str: pa.string(),
    int: pa.int64(),
    float: pa.float64(),
    bool: pa.bool_(),
    bytes: pa.binary(),
}

# Fixed-width types that can be overwritten in place
_STRUCT_FORMATS = {
    pa.int8(): "<b",
    pa.uint8(): "<B",
    pa.int16(): "<h",
    pa.uint16(): "<H",
    pa.int32(): "<i",
    pa.uint32(): "<I",
    pa.int64(): "<q",
    pa.uint64(): "<Q",
    pa.float32(): "<f",
    pa.float64(): "<d",
}


def arrow_type(hint: Any) -> pa.DataType:
    """Arrow type for a field annotation. Optional[T] is a nullable T."""
    if hint in _SCALARS:
        return _SCALARS[hint]
    if dataclasses.is_dataclass(hint):
        return pa.struct([pa.field(f.name, _field_type(hint, f)) for f in dataclasses.fields(hint)])
    origin = typing.get_origin(hint)
    args = typing.get_args(hint)
    if origin is list and len(args) == 1:
        return pa.list_(arrow_type(args[0]))
    if origin is dict and len(args) == 2:
        return pa.map_(arrow_type(args[0]), arrow_type(args[1]))
    if origin in (typing.Union, types.UnionType):
        present = [a for a in args if a is not type(None)]
        if len(present) == 1 and len(args) == 2:
            return arrow_type(present[0])
    raise EncodingFailed(f"no archive layout for annotation {hint!r}")


def _field_type(record_type: type, f: dataclasses.Field) -> pa.DataType:
    override = f.metadata.get("arrow")
    if override is not None:
        return override
    return arrow_type(field_hints(record_type)[f.name])


@functools.lru_cache(maxsize=None)
def arrow_schema(record_type: type) -> pa.Schema:
    return pa.schema(
        [pa.field(f.name, _field_type(record_type, f)) for f in dataclasses.fields(record_type)]
    )


def _arrow_value(typ: pa.DataType, value: Any) -> Any:
    # maps go in as key/value pairs, at any depth
    if value is None:
        return None
    if pa.types.is_map(typ):
        items = value.items() if isinstance(value, Mapping) else value
        return [(k, _arrow_value(typ.item_type, v)) for k, v in items]
    if pa.types.is_list(typ) and isinstance(value, list):
        return [_arrow_value(typ.value_type, item) for item in value]
    if pa.types.is_struct(typ) and isinstance(value, Mapping):
        return {f.name: _arrow_value(f.type, value.get(f.name)) for f in typ}
    return value


def _to_row(schema: pa.Schema, obj: Any) -> dict[str, Any]:
    row = to_fields(obj)
    return {f.name: _arrow_value(f.type, row.get(f.name)) for f in schema}


def _read_single_batch(buffer: pa.Buffer, schema: pa.Schema) -> pa.RecordBatch:
    try:
        reader = pa.ipc.open_stream(buffer)
        if not reader.schema.equals(schema):
            raise ParsingFailed(f"archive schema {reader.schema} does not match {schema}")
        batch = reader.read_next_batch()
        try:
            reader.read_next_batch()
        except StopIteration:
            pass
        else:
            raise ParsingFailed("archive holds more than one batch")
        batch.validate(full=True)
    except StopIteration as e:
        raise ParsingFailed("archive holds no batch") from e
    except (pa.ArrowException, OSError) as e:
        raise ParsingFailed(str(e)) from e
    if batch.num_rows != 1:
        raise ParsingFailed(f"archive holds {batch.num_rows} rows, expected 1")
    return batch


def _read_field(batch: pa.RecordBatch, index: int, hint: Any) -> Any:
    column = batch.column(index)
    value = column[0].as_py()
    if pa.types.is_map(column.type) and isinstance(value, list):
        value = dict(value)
    return rebuild(hint, value)


class ArchivedView:
    """Read-only typed view over a validated archive.

    Attribute reads go to the backing buffer each time; nothing is cached in
    the view itself.
    """

    __slots__ = ("_source", "_record_type", "_names")

    def __init__(self, source, record_type: type):
        object.__setattr__(self, "_source", source)
        object.__setattr__(self, "_record_type", record_type)
        object.__setattr__(
            self, "_names", {f.name: i for i, f in enumerate(dataclasses.fields(record_type))}
        )

    def _batch(self) -> pa.RecordBatch:
        return self._source._current_batch()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        index = self._names.get(name)
        if index is None:
            raise AttributeError(f"{self._record_type.__name__} archive has no field {name!r}")
        return _read_field(self._batch(), index, field_hints(self._record_type).get(name))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("archived views are read-only")

    def __dir__(self):
        return list(self._names)

    def to_dict(self) -> dict[str, Any]:
        batch = self._batch()
        hints = field_hints(self._record_type)
        return {name: _read_field(batch, i, hints.get(name)) for name, i in self._names.items()}

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ArchivedView):
            return self._record_type is other._record_type and self.to_dict() == other.to_dict()
        if isinstance(other, self._record_type):
            return self.to_dict() == {f.name: getattr(other, f.name) for f in dataclasses.fields(other)}
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"Archived{self._record_type.__name__}({fields})"


class ArchiveHandle:
    """An owned, validated archive plus its lazily built cached view."""

    def __init__(self, record_type: type, buffer: pa.Buffer, batch: pa.RecordBatch):
        self.record_type = record_type
        self._buffer = buffer
        self._batch = batch
        self._view: ArchivedView | None = None

    @classmethod
    def validate(cls, record_type: type, data) -> "ArchiveHandle":
        # a writable caller buffer could change under the view
        if not isinstance(data, bytes) and not (isinstance(data, memoryview) and data.readonly):
            data = bytes(data)
        if not len(data):
            raise FormatInvalid("empty archive")
        buffer = pa.py_buffer(data)
        batch = _read_single_batch(buffer, arrow_schema(record_type))
        return cls(record_type, buffer, batch)

    @property
    def nbytes(self) -> int:
        return self._buffer.size

    def _current_batch(self) -> pa.RecordBatch:
        return self._batch

    def archive(self) -> ArchivedView:
        if self._view is None:
            self._view = ArchivedView(self, self.record_type)
        return self._view

    def deserialize(self) -> Any:
        return from_fields(self.record_type, self.archive().to_dict())

    def to_bytes(self) -> bytes:
        return self._buffer.to_pybytes()

    def __repr__(self) -> str:
        return f"ArchiveHandle({self.record_type.__name__}, {self.nbytes} bytes)"


class ArrowArchive(Codec):
    """Zero-copy codec for one record type."""

    name = "arrow"

    def __init__(self, record_type: type):
        self.record_type = record_type
        self.schema = arrow_schema(record_type)

    def serialize(self, value: Any) -> bytes:
        if not isinstance(value, self.record_type):
            raise EncodingFailed(
                f"expected {self.record_type.__name__}, got {type(value).__name__}"
            )
        try:
            batch = pa.RecordBatch.from_pylist([_to_row(self.schema, value)], schema=self.schema)
            sink = pa.BufferOutputStream()
            with pa.ipc.new_stream(sink, self.schema) as writer:
                writer.write_batch(batch)
        except (pa.ArrowException, TypeError, ValueError, OverflowError) as e:
            raise EncodingFailed(str(e)) from e
        return sink.getvalue().to_pybytes()

    def validate(self, data) -> ArchiveHandle:
        return ArchiveHandle.validate(self.record_type, data)

    def deserialize(self, data) -> Any:
        return self.validate(data).deserialize()

    def __repr__(self) -> str:
        return f"ArrowArchive({self.record_type.__name__})"


# ---- Writable mapped archives ----
_mapped_lock = threading.Lock()
_mapped: set[tuple[int, int]] = set()


class MutableView(ArchivedView):
    """View handed to MappedArchive.archive_mut; revoked when the callback returns."""

    __slots__ = ("_active",)

    def __init__(self, source: "MappedArchive", record_type: type):
        super().__init__(source, record_type)
        object.__setattr__(self, "_active", True)

    def _batch(self) -> pa.RecordBatch:
        if not self._active:
            raise ValueError("mutable view used outside archive_mut")
        return super()._batch()

    def __setattr__(self, name: str, value: Any) -> None:
        if not self._active:
            raise ValueError("mutable view used outside archive_mut")
        if name not in self._names:
            raise AttributeError(f"{self._record_type.__name__} archive has no field {name!r}")
        self._source._write_field(self._names[name], value)

    def _revoke(self) -> None:
        object.__setattr__(self, "_active", False)


class MappedArchive:
    """Exclusive writable mapping of an archive file.

    Only one MappedArchive may be open per file within a process. Nothing
    stops another process from mapping the same file.
    """

    def __init__(self, record_type: type, path: str | Path, offset: int = 0):
        self.record_type = record_type
        self.path = Path(path)
        self.offset = offset
        self._schema = arrow_schema(record_type)
        self._file = None
        self._mmap: mmap.mmap | None = None
        self._base: pa.Buffer | None = None
        self._batch: pa.RecordBatch | None = None
        self._view: ArchivedView | None = None
        self._key: tuple[int, int] | None = None

    @classmethod
    def open(cls, record_type: type, path: str | Path, offset: int = 0) -> "MappedArchive":
        archive = cls(record_type, path, offset)
        try:
            archive._open()
        except BaseException:
            archive.close()
            raise
        return archive

    def _open(self) -> None:
        if not self.path.exists():
            raise FileNotFound(str(self.path))
        try:
            self._file = open(self.path, "r+b")
            st = os.fstat(self._file.fileno())
        except OSError as e:
            raise StorageError(str(self.path)) from e

        key = (st.st_dev, st.st_ino)
        with _mapped_lock:
            if key in _mapped:
                raise ArchiveBusy(str(self.path))
            _mapped.add(key)
        self._key = key

        if st.st_size <= self.offset:
            raise FormatInvalid(f"{self.path} holds {st.st_size} bytes")
        try:
            self._mmap = mmap.mmap(self._file.fileno(), 0, access=mmap.ACCESS_WRITE)
        except (OSError, ValueError) as e:
            raise StorageError(str(self.path)) from e
        self._base = pa.py_buffer(self._mmap).slice(self.offset)
        self._batch = _read_single_batch(self._base, self._schema)
        logger.debug("Mapped %s archive %s (%d bytes)", self.record_type.__name__, self.path, st.st_size)

    @property
    def closed(self) -> bool:
        return self._batch is None

    def _current_batch(self) -> pa.RecordBatch:
        if self._batch is None:
            raise ValueError(f"archive {self.path} is closed")
        return self._batch

    def archive(self) -> ArchivedView:
        self._current_batch()
        if self._view is None:
            self._view = ArchivedView(self, self.record_type)
        return self._view

    def deserialize(self) -> Any:
        return from_fields(self.record_type, self.archive().to_dict())

    def archive_mut(self, fn: Callable[[MutableView], Any]) -> Any:
        """Run ``fn`` with a view whose field assignments write through to the file."""
        self._current_batch()
        view = MutableView(self, self.record_type)
        try:
            return fn(view)
        finally:
            view._revoke()
            self._mmap.flush()

    def _map_offset(self, buffer: pa.Buffer) -> int:
        start = self._base.address
        if not (start <= buffer.address and buffer.address + buffer.size <= start + self._base.size):
            raise ParsingFailed(f"{self.path}: column buffer is not backed by the mapping")
        return self.offset + (buffer.address - start)

    def _write_field(self, index: int, value: Any) -> None:
        column = self._current_batch().column(index)
        name = self._schema.field(index).name
        typ = column.type
        if column.null_count:
            raise EncodingFailed(f"field '{name}' is null and has no storage to overwrite")
        buffers = column.buffers()

        if typ in _STRUCT_FORMATS:
            off = self._map_offset(buffers[1]) + column.offset * (typ.bit_width // 8)
            # pack first; pack_into clears the target before it can fail
            try:
                packed = struct.pack(_STRUCT_FORMATS[typ], value)
            except struct.error as e:
                raise EncodingFailed(f"field '{name}': {e}") from e
            self._mmap[off:off + len(packed)] = packed
        elif pa.types.is_boolean(typ):
            if not isinstance(value, bool):
                raise EncodingFailed(f"field '{name}' expects a bool, got {type(value).__name__}")
            byte_pos, bit = divmod(column.offset, 8)
            off = self._map_offset(buffers[1]) + byte_pos
            current = self._mmap[off]
            self._mmap[off] = (current | (1 << bit)) if value else (current & ~(1 << bit) & 0xFF)
        elif pa.types.is_string(typ) or pa.types.is_binary(typ):
            if pa.types.is_string(typ):
                if not isinstance(value, str):
                    raise EncodingFailed(f"field '{name}' expects a str, got {type(value).__name__}")
                encoded = value.encode("utf-8")
            else:
                encoded = bytes(value)
            start, end = struct.unpack_from("<ii", self._mmap, self._map_offset(buffers[1]) + 4 * column.offset)
            if len(encoded) != end - start:
                raise EncodingFailed(
                    f"field '{name}' holds {end - start} bytes; writing {len(encoded)} would change the layout"
                )
            off = self._map_offset(buffers[2]) + start
            self._mmap[off:off + len(encoded)] = encoded
        else:
            raise EncodingFailed(f"field '{name}' of type {typ} cannot be rewritten in place")

    def close(self) -> None:
        self._view = None
        self._batch = None
        self._base = None
        if self._mmap is not None:
            self._mmap.flush()
            try:
                self._mmap.close()
            except BufferError:
                # a caller still holds an Arrow buffer over the mapping
                logger.debug("Mapping of %s still exported; released on collection", self.path)
            self._mmap = None
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._key is not None:
            with _mapped_lock:
                _mapped.discard(self._key)
            self._key = None

    def __enter__(self) -> "MappedArchive":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"MappedArchive({self.record_type.__name__}, {str(self.path)!r}, {state})"
