"""recflow codecs - pluggable wire families behind one interface."""
from .archive import ArchiveHandle, ArchivedView, ArrowArchive, MappedArchive, MutableView, arrow_schema
from .base import Codec, UnknownCodec
from .json_codec import JsonCodec
from .msgpack_codec import MsgpackCodec

CODECS = {
    MsgpackCodec.name: MsgpackCodec,
    JsonCodec.name: JsonCodec,
}


def get_codec(name: str) -> Codec:
    try:
        return CODECS[name]()
    except KeyError:
        raise UnknownCodec(f"unknown codec {name!r}; choose from {sorted(CODECS)}") from None


__all__ = [
    "ArchiveHandle",
    "ArchivedView",
    "ArrowArchive",
    "CODECS",
    "Codec",
    "JsonCodec",
    "MappedArchive",
    "MsgpackCodec",
    "MutableView",
    "UnknownCodec",
    "arrow_schema",
    "get_codec",
]
