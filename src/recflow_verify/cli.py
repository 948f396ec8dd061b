import importlib
import json
from pathlib import Path

import click

from .audit import LAYOUTS, scan_records, summarize, write_evidence

CANONICAL_JSON_KW = {"sort_keys": True, "separators": (",", ":"), "ensure_ascii": False}


def _import_record(spec: str) -> type:
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(f"expected MODULE:CLASS, got {spec!r}")
    try:
        return getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise click.BadParameter(str(e)) from e


@click.group()
def main():
    pass


@main.command("scan")
@click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--layout", type=click.Choice(LAYOUTS), default="msgpack", show_default=True)
@click.option("--record", "record_spec", default=None, help="Current record type as MODULE:CLASS")
@click.option("--pattern", default="*", show_default=True, help="Glob for record files")
@click.option("--out", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Write evidence/records.parquet under this directory")
def scan_cmd(root: Path, layout: str, record_spec: str | None, pattern: str, out: Path | None):
    record_type = _import_record(record_spec) if record_spec else None
    df = scan_records(root, layout=layout, record_type=record_type, pattern=pattern)
    if out is not None:
        write_evidence(df, out)
    result = summarize(df)
    click.echo(json.dumps(result, **CANONICAL_JSON_KW))
    if result["status"] != "PASS":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
