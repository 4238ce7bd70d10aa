"""Bounded schema summaries for uploaded files.

Summaries are generation context only.  CSV, JSON and plain text are read in
process; spreadsheet workbooks are described by a short-lived interpreter
subprocess that loads them with pandas.  Every preview is truncated so the
prompt size stays bounded regardless of the upload.
"""

from __future__ import annotations

import csv
import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Any

from datachat.core.errors import DataIOError, FormatError
from datachat.core.schema import FileDescriptor, SchemaSummary

logger = logging.getLogger(__name__)

PREVIEW_LINES = 20
CSV_PREVIEW_CHARS = 2000
RAW_PREVIEW_CHARS = 500
EXCEL_PREVIEW_ROWS = 10
EXCEL_PREVIEW_CHARS = 2000

EXCEL_DESCRIBE_SCRIPT = f"""
import json
import sys

import pandas as pd

try:
    frame = pd.read_excel(sys.argv[1])
    frame.columns = [str(column) for column in frame.columns]
    schema = {{
        "columns": list(frame.columns),
        "shape": list(frame.shape),
        "dtypes": {{key: str(value) for key, value in frame.dtypes.items()}},
        "head": frame.head({EXCEL_PREVIEW_ROWS}).to_dict("records"),
    }}
except Exception as exc:
    schema = {{"error": str(exc)}}
print(json.dumps(schema, default=str))
"""


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def placeholder_summary(file: FileDescriptor, reason: str, preview: str = "") -> SchemaSummary:
    return SchemaSummary(
        format_tag=file.format_tag,
        preview_text=_clip(preview, RAW_PREVIEW_CHARS),
        fallback_reason=reason,
    )


class SchemaIntrospector:
    """Produce a :class:`SchemaSummary` for one uploaded file."""

    def __init__(self, *, python_executable: str | None = None, timeout: float = 10.0) -> None:
        self._python = python_executable or sys.executable
        self._timeout = timeout

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _read_text(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8-sig")
        except UnicodeDecodeError as exc:
            raise FormatError(f"{path.name} is not valid UTF-8 text: {exc}") from exc
        except OSError as exc:
            raise DataIOError(f"could not read {path.name}: {exc}") from exc

    @staticmethod
    def _head(text: str) -> str:
        return "\n".join(text.splitlines()[:PREVIEW_LINES])

    def _summarize_csv(self, file: FileDescriptor) -> SchemaSummary:
        preview: list[str] = []
        total = 0
        try:
            with file.storage_path.open("r", encoding="utf-8-sig", newline="") as handle:
                for line in handle:
                    if total < PREVIEW_LINES:
                        preview.append(line.rstrip("\r\n"))
                    total += 1
        except UnicodeDecodeError as exc:
            raise FormatError(f"{file.name} is not valid UTF-8 CSV: {exc}") from exc
        except OSError as exc:
            raise DataIOError(f"could not read {file.name}: {exc}") from exc

        columns: tuple[str, ...] = ()
        if preview:
            try:
                header = next(csv.reader([preview[0]]), [])
            except csv.Error as exc:
                raise FormatError(f"{file.name} has an unparsable header: {exc}") from exc
            columns = tuple(column.strip().strip('"') for column in header)

        return SchemaSummary(
            format_tag="csv",
            row_count_estimate=max(total - 1, 0),
            column_names=columns,
            preview_text=_clip("\n".join(preview), CSV_PREVIEW_CHARS),
        )

    def _summarize_json(self, file: FileDescriptor) -> SchemaSummary:
        text = self._read_text(file.storage_path)
        preview = _clip(self._head(text), RAW_PREVIEW_CHARS)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.info("%s: JSON parse failed, using raw preview: %s", file.name, exc)
            return SchemaSummary(format_tag="json", preview_text=preview, fallback_reason=f"invalid JSON: {exc}")
        except RecursionError:
            logger.info("%s: JSON nesting too deep, using raw preview", file.name)
            return SchemaSummary(format_tag="json", preview_text=preview, fallback_reason="JSON nesting too deep to parse")

        if isinstance(data, list):
            first = data[0] if data else {}
            keys = tuple(str(key) for key in first) if isinstance(first, dict) else ()
            return SchemaSummary(format_tag="json", row_count_estimate=len(data), column_names=keys, preview_text=preview)
        if isinstance(data, dict):
            return SchemaSummary(format_tag="json", column_names=tuple(str(key) for key in data), preview_text=preview)
        return SchemaSummary(format_tag="json", preview_text=preview)

    def _describe_excel(self, path: Path) -> dict[str, Any]:
        completed = subprocess.run(
            [self._python, "-I", "-c", EXCEL_DESCRIBE_SCRIPT, str(path)],
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )
        if completed.returncode != 0:
            detail = completed.stderr.strip().splitlines()[-1:] or [f"exit status {completed.returncode}"]
            raise RuntimeError(detail[0])
        payload = json.loads(completed.stdout)
        if not isinstance(payload, dict):
            raise ValueError("unexpected schema payload")
        if payload.get("error"):
            raise ValueError(str(payload["error"]))
        return payload

    def _summarize_excel(self, file: FileDescriptor) -> SchemaSummary:
        try:
            payload = self._describe_excel(file.storage_path)
        except subprocess.TimeoutExpired:
            logger.warning("%s: workbook introspection timed out after %ss", file.name, self._timeout)
            return placeholder_summary(file, f"could not read schema: timed out after {self._timeout:g}s")
        except (OSError, RuntimeError, ValueError) as exc:
            logger.warning("%s: workbook introspection failed: %s", file.name, exc)
            return placeholder_summary(file, f"could not read schema: {exc}")

        shape = payload.get("shape") or [0, 0]
        records = payload.get("head") or []
        preview = "\n".join(json.dumps(record, default=str, ensure_ascii=False) for record in records)
        return SchemaSummary(
            format_tag="excel",
            row_count_estimate=int(shape[0]) if shape else None,
            column_names=tuple(str(column) for column in payload.get("columns") or []),
            dtype_map={str(key): str(value) for key, value in (payload.get("dtypes") or {}).items()},
            preview_text=_clip(preview, EXCEL_PREVIEW_CHARS),
        )

    def _summarize_raw(self, file: FileDescriptor) -> SchemaSummary:
        text = self._read_text(file.storage_path)
        return SchemaSummary(format_tag="unknown", preview_text=_clip(self._head(text), RAW_PREVIEW_CHARS))

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def summarize(self, file: FileDescriptor) -> SchemaSummary:
        if not file.storage_path.is_file():
            raise DataIOError(f"file not found: {file.name}")
        if file.format_tag == "csv":
            return self._summarize_csv(file)
        if file.format_tag == "json":
            return self._summarize_json(file)
        if file.format_tag == "excel":
            return self._summarize_excel(file)
        return self._summarize_raw(file)


__all__ = ["SchemaIntrospector", "placeholder_summary"]
