import pytest

from recflow_codec import CODECS, JsonCodec, MsgpackCodec, UnknownCodec, get_codec
from recflow_core import EncodingFailed, ParsingFailed

VALUE = {"flow_id": 4, "name": "Jan Janssen", "tags": ["a", "b"], "score": 1.5, "ok": True}


@pytest.mark.parametrize("codec", [MsgpackCodec(), JsonCodec()], ids=lambda c: c.name)
def test_round_trip(codec):
    assert codec.deserialize(codec.serialize(VALUE)) == VALUE


def test_msgpack_keeps_bytes():
    codec = MsgpackCodec()
    assert codec.deserialize(codec.serialize({"blob": b"\x00\xff"})) == {"blob": b"\x00\xff"}


def test_json_is_compact_utf8():
    data = JsonCodec().serialize({"name": "Zoë", "n": 1})
    assert data == '{"name":"Zoë","n":1}'.encode("utf-8")


@pytest.mark.parametrize("codec", [MsgpackCodec(), JsonCodec()], ids=lambda c: c.name)
def test_unsupported_value(codec):
    with pytest.raises(EncodingFailed):
        codec.serialize({"handle": object()})


def test_json_rejects_nan():
    with pytest.raises(EncodingFailed):
        JsonCodec().serialize({"x": float("nan")})


@pytest.mark.parametrize(
    "codec, data",
    [
        (MsgpackCodec(), b"\x85\xa4name"),   # map of 5 entries, truncated
        (MsgpackCodec(), b"\xc1"),           # reserved byte
        (JsonCodec(), b'{"flow_id": 1,'),
        (JsonCodec(), b"\xff\xfe"),
    ],
)
def test_malformed_bytes(codec, data):
    with pytest.raises(ParsingFailed):
        codec.deserialize(data)


def test_get_codec():
    assert isinstance(get_codec("msgpack"), MsgpackCodec)
    assert isinstance(get_codec("json"), JsonCodec)
    assert set(CODECS) == {"msgpack", "json"}
    with pytest.raises(UnknownCodec):
        get_codec("bincode")
