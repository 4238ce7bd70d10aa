import json
import subprocess
import sys
from pathlib import Path

import pytest
from openpyxl import Workbook

sys.path.append(str(Path(__file__).resolve().parents[1]))

from datachat.core.errors import DataIOError, FormatError
from datachat.core.schema import FileDescriptor
from datachat.extractors import introspect
from datachat.extractors.introspect import SchemaIntrospector


def _descriptor(path: Path) -> FileDescriptor:
    return FileDescriptor.from_path(path.name, path)


def test_csv_summary_reports_columns_and_row_estimate(tmp_path):
    path = tmp_path / "sales.csv"
    rows = [f"north,{index},{index * 1.5}" for index in range(30)]
    path.write_text('region,"units", price\n' + "\n".join(rows) + "\n", encoding="utf-8")

    summary = SchemaIntrospector().summarize(_descriptor(path))

    assert summary.format_tag == "csv"
    assert summary.column_names == ("region", "units", "price")
    assert summary.row_count_estimate == 30
    assert len(summary.preview_text.splitlines()) == 20
    assert summary.fallback_reason is None
    assert "approximately 30 rows" in summary.render()


def test_csv_preview_is_bounded(tmp_path):
    path = tmp_path / "wide.csv"
    header = ",".join(f"col{index}" for index in range(200))
    path.write_text(header + "\n" + ("x" * 900 + "\n") * 50, encoding="utf-8")

    summary = SchemaIntrospector().summarize(_descriptor(path))

    assert len(summary.preview_text) <= introspect.CSV_PREVIEW_CHARS
    assert len(summary.column_names) == 200


def test_json_array_reports_item_count_and_first_keys(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(json.dumps([{"id": 1, "name": "a"}, {"id": 2, "name": "b", "extra": True}]), encoding="utf-8")

    summary = SchemaIntrospector().summarize(_descriptor(path))

    assert summary.row_count_estimate == 2
    assert summary.column_names == ("id", "name")
    assert "JSON array with 2 items" in summary.render()


def test_json_object_reports_keys(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"alpha": [1, 2], "beta": {"x": 1}}), encoding="utf-8")

    summary = SchemaIntrospector().summarize(_descriptor(path))

    assert summary.row_count_estimate is None
    assert summary.column_names == ("alpha", "beta")


def test_invalid_json_falls_back_to_bounded_preview(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json " + "y" * 3000, encoding="utf-8")

    summary = SchemaIntrospector().summarize(_descriptor(path))

    assert summary.fallback_reason is not None
    assert summary.preview_text.startswith("{not json")
    assert len(summary.preview_text) <= introspect.RAW_PREVIEW_CHARS


def test_deeply_nested_json_falls_back_to_raw_preview(tmp_path):
    path = tmp_path / "nested.json"
    path.write_text("[" * 100000 + "]" * 100000, encoding="utf-8")

    summary = SchemaIntrospector().summarize(_descriptor(path))

    assert summary.format_tag == "json"
    assert summary.fallback_reason is not None
    assert summary.preview_text.startswith("[[[")
    assert len(summary.preview_text) <= introspect.RAW_PREVIEW_CHARS


def test_missing_file_raises_io_error(tmp_path):
    descriptor = FileDescriptor.from_path("gone.csv", tmp_path / "gone.csv")

    with pytest.raises(DataIOError):
        SchemaIntrospector().summarize(descriptor)


def test_undecodable_csv_raises_format_error(tmp_path):
    path = tmp_path / "binary.csv"
    path.write_bytes(b"\xff\xfe\x00\x81bad")

    with pytest.raises(FormatError):
        SchemaIntrospector().summarize(_descriptor(path))


def test_excel_summary_uses_interpreter_subprocess(tmp_path):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["name", "score"])
    sheet.append(["ann", 3])
    sheet.append(["bob", 5])
    sheet.append(["cid", 8])
    path = tmp_path / "scores.xlsx"
    workbook.save(path)

    summary = SchemaIntrospector(timeout=30).summarize(_descriptor(path))

    assert summary.fallback_reason is None
    assert summary.format_tag == "excel"
    assert summary.column_names == ("name", "score")
    assert summary.row_count_estimate == 3
    assert set(summary.dtype_map or {}) == {"name", "score"}
    assert "ann" in summary.preview_text


def test_excel_timeout_degrades_to_placeholder(tmp_path, monkeypatch):
    path = tmp_path / "slow.xlsx"
    path.write_bytes(b"placeholder")

    def fake_run(*args, **kwargs):
        raise subprocess.TimeoutExpired(cmd=args[0], timeout=kwargs.get("timeout"))

    monkeypatch.setattr(introspect.subprocess, "run", fake_run)

    summary = SchemaIntrospector(timeout=10).summarize(_descriptor(path))

    assert summary.fallback_reason is not None
    assert "timed out" in summary.fallback_reason
    assert "Schema unavailable" in summary.render()


def test_corrupt_workbook_degrades_to_placeholder(tmp_path):
    path = tmp_path / "corrupt.xlsx"
    path.write_bytes(b"this is not a workbook")

    summary = SchemaIntrospector(timeout=30).summarize(_descriptor(path))

    assert summary.fallback_reason is not None
    assert summary.fallback_reason.startswith("could not read schema")
