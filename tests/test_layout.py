import struct
from dataclasses import dataclass, field

import pytest

from recflow_codec import JsonCodec, MsgpackCodec
from recflow_core import (
    FormatInvalid,
    ParsingFailed,
    ResolutionState,
    VariantNotFound,
    migration,
    record,
)
from recflow_core.layout import (
    decode_envelope,
    encode_envelope,
    encode_prefixed,
    from_fields,
    peek_envelope_tag,
    resolve_envelope,
    split_prefixed,
)

CODECS = [MsgpackCodec(), JsonCodec()]


@dataclass
class Address:
    city: str
    zip_code: str


@record(variant=3)
@dataclass
class User:
    first_name: str
    middle_name: str
    last_name: str


@record(variant=2)
@dataclass
class UserV1:
    first_name: str
    last_name: str


@record(variant=1)
@dataclass
class UserV2:
    name: str


@record(variant=3)
@dataclass
class UserNoMigrations:
    first_name: str
    middle_name: str
    last_name: str


@record(variant=5)
@dataclass
class Contact:
    name: str
    address: Address
    phones: list = field(default_factory=list)


@migration(User, UserV1)
def user_from_v1(value: UserV1) -> User:
    names = value.last_name.split()
    if len(names) == 2:
        return User(value.first_name, names[0], names[1])
    return User(value.first_name, "", value.last_name)


@migration(User, UserV2)
def user_from_v2(value: UserV2) -> User:
    names = value.name.split() + ["", "", ""]
    return User(names[0], names[1], names[2])


@pytest.mark.parametrize("codec", CODECS, ids=lambda c: c.name)
def test_round_trip(codec):
    user = User("John", "Adam", "Doe")
    assert decode_envelope(User, encode_envelope(user, codec), codec) == user


@pytest.mark.parametrize("codec", CODECS, ids=lambda c: c.name)
def test_envelope_tag_leads(codec):
    data = encode_envelope(UserV2(name="John Adam Doe"), codec)
    assert peek_envelope_tag(data, codec) == 1
    assert list(codec.deserialize(data)) == ["flow_id", "name"]


@pytest.mark.parametrize("codec", CODECS, ids=lambda c: c.name)
@pytest.mark.parametrize(
    "prior, expected",
    [
        (UserV2(name="John Adam Doe"), User("John", "Adam", "Doe")),
        (UserV1(first_name="John", last_name="Adam Doe"), User("John", "Adam", "Doe")),
    ],
)
def test_migration_converges(codec, prior, expected):
    resolution = resolve_envelope(User, encode_envelope(prior, codec), codec)
    assert resolution.state is ResolutionState.MIGRATE_FROM_EDGE
    assert resolution.value == expected

    again = resolve_envelope(User, encode_envelope(resolution.value, codec), codec)
    assert again.state is ResolutionState.DIRECT_MATCH
    assert again.value == expected


@pytest.mark.parametrize("codec", CODECS, ids=lambda c: c.name)
def test_unregistered_prior(codec):
    data = encode_envelope(UserV2(name="John Adam Doe"), codec)
    with pytest.raises(VariantNotFound):
        decode_envelope(UserNoMigrations, data, codec)


@pytest.mark.parametrize("codec", CODECS, ids=lambda c: c.name)
@pytest.mark.parametrize("data", [b"", b"{"])
def test_too_short(codec, data):
    with pytest.raises(FormatInvalid):
        decode_envelope(User, data, codec)


def test_json_field_order_is_irrelevant():
    data = b'{"last_name":"Doe","flow_id":3,"first_name":"John","middle_name":"Adam"}'
    assert decode_envelope(User, data, JsonCodec()) == User("John", "Adam", "Doe")


def test_payload_from_other_schema_under_current_tag():
    codec = MsgpackCodec()
    data = codec.serialize({"flow_id": 3, "name": "John Adam Doe"})
    with pytest.raises(ParsingFailed):
        decode_envelope(User, data, codec)


@pytest.mark.parametrize("envelope", [[3, "John"], {"name": "x"}, {"flow_id": "3"}, {"flow_id": 70000}])
def test_bad_tag_field(envelope):
    codec = MsgpackCodec()
    with pytest.raises(ParsingFailed):
        decode_envelope(User, codec.serialize(envelope), codec)


@pytest.mark.parametrize("codec", CODECS, ids=lambda c: c.name)
def test_nested_dataclass_round_trip(codec):
    contact = Contact("Jan", Address("Utrecht", "3511"), ["+31"])
    decoded = decode_envelope(Contact, encode_envelope(contact, codec), codec)
    assert decoded == contact
    assert isinstance(decoded.address, Address)


def test_from_fields_uses_defaults():
    contact = from_fields(Contact, {"name": "Jan", "address": {"city": "Gouda", "zip_code": "2801"}})
    assert contact.phones == []


def test_prefixed_layout():
    data = encode_prefixed(0x0102, b"archive")
    assert data[:2] == struct.pack("<H", 0x0102) == b"\x02\x01"
    tag, payload = split_prefixed(data)
    assert tag == 0x0102
    assert bytes(payload) == b"archive"


@pytest.mark.parametrize("data", [b"", b"\x01", b"\x01\x00"])
def test_prefixed_too_short(data):
    with pytest.raises(FormatInvalid):
        split_prefixed(data)


@record(variant=6)
@dataclass
class Itinerary:
    stops: list[Address]
    offices: dict[str, Address]
    billing: Address | None = None
    history: list[list[Address]] = field(default_factory=list)


@pytest.mark.parametrize("codec", CODECS, ids=lambda c: c.name)
@pytest.mark.parametrize(
    "itinerary",
    [
        Itinerary(
            [Address("Utrecht", "3511"), Address("Gouda", "2801")],
            {"hq": Address("Delft", "2611")},
            Address("Leiden", "2311"),
            [[Address("Breda", "4811")]],
        ),
        Itinerary([], {}, None, []),
    ],
)
def test_nested_collections_round_trip(codec, itinerary):
    decoded = decode_envelope(Itinerary, encode_envelope(itinerary, codec), codec)
    assert decoded == itinerary
    assert all(isinstance(stop, Address) for stop in decoded.stops)
    assert all(isinstance(office, Address) for office in decoded.offices.values())


def test_map_given_as_pairs():
    itinerary = from_fields(Itinerary, {"stops": [], "offices": [("hq", {"city": "Delft", "zip_code": "2611"})]})
    assert itinerary.offices == {"hq": Address("Delft", "2611")}


def test_map_of_wrong_shape():
    with pytest.raises(ParsingFailed):
        from_fields(Itinerary, {"stops": [], "offices": [1, 2]})
