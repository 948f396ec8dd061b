"""Migration resolution: current tag, one registered hop, or nothing."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .errors import VariantNotFound
from .schema import MigrationEdge, Schema

logger = logging.getLogger(__name__)


class ResolutionState(enum.Enum):
    DIRECT_MATCH = "direct_match"
    MIGRATE_FROM_EDGE = "migrate_from_edge"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Resolution:
    state: ResolutionState
    value: Any
    source_tag: int

    @property
    def migrated(self) -> bool:
        return self.state is ResolutionState.MIGRATE_FROM_EDGE


def plan(schema: Schema, tag: int) -> tuple[ResolutionState, MigrationEdge | None]:
    """Pick the decode path for ``tag`` without decoding anything."""
    if tag == schema.tag:
        return ResolutionState.DIRECT_MATCH, None
    edge = schema.registry.lookup(tag)
    if edge is None:
        return ResolutionState.UNRESOLVED, None
    return ResolutionState.MIGRATE_FROM_EDGE, edge


def resolve(schema: Schema, tag: int, decode: Callable[[type], Any]) -> Resolution:
    """Decode a payload carrying ``tag`` as ``schema``'s current type.

    ``decode(record_type)`` materializes the payload as ``record_type`` using
    that type's own layout and codec. Conversions are total, so a decode
    failure is the only way a registered path can fail.
    """
    state, edge = plan(schema, tag)
    if state is ResolutionState.DIRECT_MATCH:
        value = decode(schema.record_type)
    elif state is ResolutionState.MIGRATE_FROM_EDGE:
        prior = decode(edge.prior_type)
        value = edge.convert(prior)
        logger.debug("Migrated %s (tag %d) to %s (tag %d)",
                     edge.prior_type.__name__, tag, schema.name, schema.tag)
    else:
        raise VariantNotFound(tag, schema.name)
    return Resolution(state, value, tag)
