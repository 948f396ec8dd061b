"""recflow core - tags, migration resolution and record layouts."""
from .errors import (
    ArchiveBusy,
    EncodingFailed,
    FailedToWrite,
    FileNotFound,
    FlowError,
    FormatInvalid,
    ModeNotEnabled,
    ParsingFailed,
    RegistrationError,
    StorageError,
    VariantNotFound,
)
from .resolver import Resolution, ResolutionState, plan, resolve
from .schema import MigrationEdge, MigrationRegistry, Schema, is_record, migration, record, schema_of

__all__ = [
    "ArchiveBusy",
    "EncodingFailed",
    "FailedToWrite",
    "FileNotFound",
    "FlowError",
    "FormatInvalid",
    "MigrationEdge",
    "MigrationRegistry",
    "ModeNotEnabled",
    "ParsingFailed",
    "RegistrationError",
    "Resolution",
    "ResolutionState",
    "Schema",
    "StorageError",
    "VariantNotFound",
    "is_record",
    "migration",
    "plan",
    "record",
    "resolve",
    "schema_of",
]
