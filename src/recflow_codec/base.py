"""Codec binding: the two-function interface every wire family implements."""
from __future__ import annotations

import abc
from typing import Any


class UnknownCodec(KeyError):
    pass


class Codec(abc.ABC):
    """Turns a value into bytes and back.

    serialize raises EncodingFailed when the value has no encoding;
    deserialize raises ParsingFailed when the bytes cannot be read back.
    """

    name = ""

    @abc.abstractmethod
    def serialize(self, value: Any) -> bytes:
        ...

    @abc.abstractmethod
    def deserialize(self, data: bytes) -> Any:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
