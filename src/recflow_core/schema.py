"""Explicit binding of dataclasses to the versioned record protocol.

A record type declares its SchemaTag and which operation families it
supports with ``@record``; prior variants are attached to it with
``@migration``. Each registry is a flat tag -> edge mapping: a variant two
generations back must be registered directly against the current type.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from .errors import ModeNotEnabled, RegistrationError
from .protocol import ENVELOPE_TAG_FIELD, MAX_TAG, MIN_TAG

# Operation families
FILE = "file"
NONBLOCKING = "nonblocking"
MEMORY = "memory"
ZEROCOPY = "zerocopy"

_SCHEMA_ATTR = "__flow_schema__"


@dataclass(frozen=True)
class MigrationEdge:
    from_variant: int
    prior_type: type
    convert: Callable[[Any], Any]


class MigrationRegistry:
    """Prior variants convertible to one current record type, keyed by tag."""

    def __init__(self, current_tag: int, current_name: str):
        self.current_tag = current_tag
        self.current_name = current_name
        self._edges: dict[int, MigrationEdge] = {}

    def register(self, prior_type: type, convert: Callable[[Any], Any]) -> MigrationEdge:
        prior_tag = schema_of(prior_type).tag
        if prior_tag == self.current_tag:
            raise RegistrationError(
                f"{prior_type.__name__} shares tag {prior_tag} with {self.current_name}"
            )
        if prior_tag in self._edges:
            existing = self._edges[prior_tag].prior_type.__name__
            raise RegistrationError(
                f"tag {prior_tag} already migrates to {self.current_name} from {existing}"
            )
        edge = MigrationEdge(prior_tag, prior_type, convert)
        self._edges[prior_tag] = edge
        return edge

    def lookup(self, tag: int) -> MigrationEdge | None:
        return self._edges.get(tag)

    @property
    def tags(self) -> tuple[int, ...]:
        return tuple(self._edges)

    def __contains__(self, tag: object) -> bool:
        return tag in self._edges

    def __iter__(self) -> Iterator[MigrationEdge]:
        return iter(self._edges.values())

    def __len__(self) -> int:
        return len(self._edges)


@dataclass
class Schema:
    record_type: type
    tag: int
    modes: frozenset
    verify_write: bool | None
    registry: MigrationRegistry

    @property
    def name(self) -> str:
        return self.record_type.__name__

    @property
    def zerocopy(self) -> bool:
        return ZEROCOPY in self.modes

    def supports(self, mode: str) -> bool:
        return mode in self.modes

    def require(self, mode: str, *, zerocopy: bool = False) -> None:
        if self.zerocopy != zerocopy:
            layout = "prefixed-archive" if self.zerocopy else "tagged-envelope"
            raise ModeNotEnabled(f"{self.name} uses the {layout} layout")
        if mode not in self.modes:
            raise ModeNotEnabled(f"{self.name} does not enable '{mode}'")


def _check_tag(tag: int) -> int:
    if isinstance(tag, bool) or not isinstance(tag, int):
        raise RegistrationError(f"variant must be an int, got {tag!r}")
    if not MIN_TAG <= tag <= MAX_TAG:
        raise RegistrationError(f"variant {tag} does not fit in an unsigned 16-bit tag")
    return tag


def record(
    variant: int,
    *,
    file: bool = True,
    nonblocking: bool = False,
    memory: bool = True,
    zerocopy: bool = False,
    verify_write: bool | None = None,
):
    """Bind a dataclass to the protocol under SchemaTag ``variant``.

    ``file`` and ``nonblocking`` enable the blocking and async path-based
    operations, ``memory`` the in-memory encode/decode pair. ``zerocopy``
    switches the type to the prefixed-archive layout. ``verify_write``
    overrides the configured write verification for this type.
    """
    tag = _check_tag(variant)

    def decorator(cls: type) -> type:
        if not dataclasses.is_dataclass(cls):
            raise RegistrationError(f"{cls.__name__} must be a dataclass")
        names = {f.name for f in dataclasses.fields(cls)}
        if ENVELOPE_TAG_FIELD in names:
            raise RegistrationError(
                f"{cls.__name__} declares reserved field '{ENVELOPE_TAG_FIELD}'"
            )
        modes = {name for name, on in ((FILE, file), (NONBLOCKING, nonblocking), (MEMORY, memory)) if on}
        if zerocopy:
            modes.add(ZEROCOPY)
        schema = Schema(
            record_type=cls,
            tag=tag,
            modes=frozenset(modes),
            verify_write=verify_write,
            registry=MigrationRegistry(tag, cls.__name__),
        )
        setattr(cls, _SCHEMA_ATTR, schema)
        return cls

    return decorator


def schema_of(record_type: type) -> Schema:
    # vars() so that subclasses of a bound type do not inherit its tag
    schema = vars(record_type).get(_SCHEMA_ATTR)
    if schema is None:
        raise RegistrationError(f"{record_type.__name__} is not bound with @record")
    return schema


def is_record(record_type: type) -> bool:
    return isinstance(record_type, type) and _SCHEMA_ATTR in vars(record_type)


def migration(current: type, prior: type):
    """Register the decorated function as the one-hop conversion prior -> current."""
    current_schema = schema_of(current)
    prior_schema = schema_of(prior)
    if current_schema.zerocopy != prior_schema.zerocopy:
        raise RegistrationError(
            f"{prior.__name__} and {current.__name__} use different record layouts"
        )

    def decorator(convert: Callable[[Any], Any]) -> Callable[[Any], Any]:
        current_schema.registry.register(prior, convert)
        return convert

    return decorator
