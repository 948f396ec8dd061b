"""Text codec backed by JSON. Echoes the encoded form at DEBUG level."""
from __future__ import annotations

import json
import logging
from typing import Any

from recflow_core.errors import EncodingFailed, ParsingFailed

from .base import Codec

logger = logging.getLogger(__name__)

JSON_KW = {"separators": (",", ":"), "ensure_ascii": False, "allow_nan": False}


class JsonCodec(Codec):
    name = "json"

    def serialize(self, value: Any) -> bytes:
        try:
            text = json.dumps(value, **JSON_KW)
        except (TypeError, ValueError) as e:
            raise EncodingFailed(str(e)) from e
        logger.debug("Json\n%s", text)
        return text.encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        try:
            return json.loads(bytes(data).decode("utf-8"))
        except ValueError as e:
            raise ParsingFailed(str(e)) from e
