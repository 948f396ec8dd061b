import json
from dataclasses import dataclass
from pathlib import Path

import pyarrow.parquet as pq
import pytest
from click.testing import CliRunner

from recflow_codec import MsgpackCodec
from recflow_core import migration, record
from recflow_core.checksum import crc32c
from recflow_flow import files, zerocopy
from recflow_verify import scan_records, summarize, write_evidence
from recflow_verify.cli import main


@record(variant=2)
@dataclass
class Sensor:
    name: str
    unit: str


@record(variant=1)
@dataclass
class SensorV1:
    name: str


@record(variant=2, zerocopy=True)
@dataclass
class Frame:
    seq: int


@migration(Sensor, SensorV1)
def sensor_from_v1(old: SensorV1) -> Sensor:
    return Sensor(old.name, "C")


@pytest.fixture
def store(tmp_path):
    root = tmp_path / "store"
    root.mkdir()
    files.save_to_path(Sensor("t1", "K"), root / "a.rec")
    files.save_to_path(SensorV1("t0"), root / "b.rec")
    (root / "nested").mkdir()
    files.save_to_path(Sensor("t2", "C"), root / "nested" / "c.rec")
    return root


def test_scan_clean_store(store):
    df = scan_records(store, record_type=Sensor)
    assert list(df["path"]) == ["a.rec", "b.rec", "nested/c.rec"]
    assert list(df["tag"]) == [2, 1, 2]
    assert set(df["status"]) == {"OK"}
    assert list(df["resolution"]) == ["direct_match", "migrate_from_edge", "direct_match"]
    assert df.loc[0, "crc32c"] == f"{crc32c((store / 'a.rec').read_bytes()):08x}"
    assert summarize(df) == {"status": "PASS", "record_count": 3, "error_count": 0, "errors": []}


def test_scan_without_record_type(store):
    df = scan_records(store)
    assert df["resolution"].isna().all()
    assert set(df["status"]) == {"OK"}


def test_scan_reports_damage(store):
    (store / "short.rec").write_bytes(b"\x01")
    (store / "other.rec").write_bytes(MsgpackCodec().serialize({"flow_id": 9, "name": "x"}))
    (store / "garbled.rec").write_bytes(MsgpackCodec().serialize({"flow_id": 2, "nom": "x"}))

    with pytest.warns(UserWarning, match="Damaged record"):
        df = scan_records(store, record_type=Sensor)
    status = dict(zip(df["path"], df["status"]))
    assert status["short.rec"] == "E_FORMAT_INVALID"
    assert status["other.rec"] == "E_VARIANT_NOT_FOUND"
    assert status["garbled.rec"] == "E_PARSING_FAILED"
    assert status["a.rec"] == "OK"

    result = summarize(df)
    assert result["status"] == "FAIL"
    assert result["error_count"] == 3
    assert {"code": "E_FORMAT_INVALID", "path": "short.rec"} in result["errors"]


def test_scan_archives(tmp_path):
    zerocopy.save_to_path(Frame(1), tmp_path / "f1")
    (tmp_path / "f2").write_bytes(b"\x02\x00garbage")
    with pytest.warns(UserWarning):
        df = scan_records(tmp_path, layout="archive", record_type=Frame)
    assert list(df["status"]) == ["OK", "E_PARSING_FAILED"]
    assert list(df["tag"]) == [2, 2]


def test_unknown_layout(tmp_path):
    with pytest.raises(ValueError):
        scan_records(tmp_path, layout="bincode")


def test_write_evidence(store, tmp_path):
    df = scan_records(store, record_type=Sensor, pattern="*.rec")
    dest = write_evidence(df, tmp_path / "out")
    assert dest == tmp_path / "out" / "evidence" / "records.parquet"
    table = pq.read_table(dest)
    assert table.column_names == ["path", "size", "tag", "crc32c", "status", "resolution"]
    assert table.num_rows == 3
    assert str(table.schema.field("tag").type) == "int32"


def test_cli_scan(store, tmp_path):
    runner = CliRunner()
    result = runner.invoke(
        main, ["scan", str(store), "--record", f"{__name__}:Sensor", "--out", str(tmp_path / "out")]
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["record_count"] == 3
    assert (tmp_path / "out" / "evidence" / "records.parquet").exists()


def test_cli_scan_fails_on_damage(store):
    (store / "short.rec").write_bytes(b"")
    result = CliRunner().invoke(main, ["scan", str(store)])
    assert result.exit_code == 1
    assert json.loads(result.output)["errors"] == [{"code": "E_FORMAT_INVALID", "path": "short.rec"}]


def test_cli_rejects_bad_record_spec(store):
    result = CliRunner().invoke(main, ["scan", str(store), "--record", "no_colon"])
    assert result.exit_code == 2


def test_scan_reports_unreadable_file(store, monkeypatch):
    read_bytes = Path.read_bytes

    def locked(self):
        if self.name == "b.rec":
            raise PermissionError(13, "Permission denied", str(self))
        return read_bytes(self)

    monkeypatch.setattr(Path, "read_bytes", locked)
    with pytest.warns(UserWarning, match="b.rec"):
        df = scan_records(store, record_type=Sensor)
    status = dict(zip(df["path"], df["status"]))
    assert status == {"a.rec": "OK", "b.rec": "E_STORAGE", "nested/c.rec": "OK"}
    assert df["size"].isna().sum() == 1
    assert summarize(df)["errors"] == [{"code": "E_STORAGE", "path": "b.rec"}]
