"""Binary codec backed by MessagePack."""
from __future__ import annotations

from typing import Any

import msgpack

from recflow_core.errors import EncodingFailed, ParsingFailed

from .base import Codec


class MsgpackCodec(Codec):
    name = "msgpack"

    def serialize(self, value: Any) -> bytes:
        try:
            return msgpack.packb(value, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            raise EncodingFailed(str(e)) from e

    def deserialize(self, data: bytes) -> Any:
        try:
            return msgpack.unpackb(data, raw=False, strict_map_key=False)
        except (msgpack.exceptions.UnpackException, ValueError, TypeError) as e:
            raise ParsingFailed(str(e)) from e
