"""Offline audit of stored records: disk is truth.

Every file under a root is read, checksummed and its tag extracted. When a
record type is given, each file is also resolved against it, so the report
shows which records load directly, which would migrate, and which cannot be
read at all. Damaged records are reported, never repaired.
"""
from __future__ import annotations

from pathlib import Path
from warnings import warn

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from recflow_codec import get_codec
from recflow_core.checksum import crc32c
from recflow_core.errors import FlowError, VariantNotFound
from recflow_core.layout import peek_envelope_tag, resolve_envelope, split_prefixed
from recflow_core.resolver import ResolutionState, plan
from recflow_core.schema import schema_of
from recflow_flow.storage import DEFAULT_STORAGE
from recflow_flow.zerocopy import resolve_stored

ARCHIVE = "archive"
LAYOUTS = ("msgpack", "json", ARCHIVE)

COLUMNS = ["path", "size", "tag", "crc32c", "status", "resolution"]

EVIDENCE_SCHEMA = pa.schema(
    [
        ("path", pa.string()),
        ("size", pa.int64()),
        ("tag", pa.int32()),
        ("crc32c", pa.string()),
        ("status", pa.string()),
        ("resolution", pa.string()),
    ]
)

STATUS_OK = "OK"


def _inspect(root: Path, path: Path, layout: str, record_type: type | None) -> dict:
    row = {
        "path": path.relative_to(root).as_posix(),
        "size": None,
        "tag": None,
        "crc32c": None,
        "status": STATUS_OK,
        "resolution": None,
    }
    codec = None if layout == ARCHIVE else get_codec(layout)
    try:
        # unreadable or vanished files become E_STORAGE / E_FILE_NOT_FOUND rows
        data = DEFAULT_STORAGE.read(path)
        row["size"] = len(data)
        row["crc32c"] = f"{crc32c(data):08x}"

        if codec is None:
            tag, _ = split_prefixed(data)
        else:
            tag = peek_envelope_tag(data, codec)
        row["tag"] = tag

        if record_type is not None:
            state, _ = plan(schema_of(record_type), tag)
            row["resolution"] = state.value
            if state is ResolutionState.UNRESOLVED:
                raise VariantNotFound(tag, record_type.__name__)
            # full decode so payload damage behind a good tag is caught too
            if codec is None:
                resolve_stored(record_type, data)
            else:
                resolve_envelope(record_type, data, codec)
    except FlowError as e:
        row["status"] = e.code
        warn(f"Damaged record {row['path']}: {e}")
    return row


def scan_records(
    root: str | Path,
    layout: str = "msgpack",
    record_type: type | None = None,
    pattern: str = "*",
) -> pd.DataFrame:
    if layout not in LAYOUTS:
        raise ValueError(f"Unsupported layout {layout!r} (use one of {', '.join(LAYOUTS)})")
    root = Path(root)
    rows = [
        _inspect(root, p, layout, record_type)
        for p in sorted(root.rglob(pattern))
        if p.is_file()
    ]
    df = pd.DataFrame(rows, columns=COLUMNS)
    df["size"] = df["size"].astype("Int64")
    df["tag"] = df["tag"].astype("Int32")
    return df


def write_evidence(df: pd.DataFrame, out_path: str | Path) -> Path:
    """Write evidence/records.parquet under ``out_path``."""
    target = Path(out_path) / "evidence"
    target.mkdir(parents=True, exist_ok=True)
    table = pa.Table.from_pandas(df[COLUMNS], schema=EVIDENCE_SCHEMA, preserve_index=False)
    dest = target / "records.parquet"
    pq.write_table(table, dest)
    return dest


def summarize(df: pd.DataFrame) -> dict:
    bad = df[df["status"] != STATUS_OK]
    errors = [{"code": row.status, "path": row.path} for row in bad.itertuples(index=False)]
    return {
        "status": "PASS" if not errors else "FAIL",
        "record_count": int(len(df)),
        "error_count": len(errors),
        "errors": errors,
    }
