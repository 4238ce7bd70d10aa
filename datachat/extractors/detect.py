"""Format tag detection for uploaded files.

Classification is extension based: the tag only decides which loader the
introspector and the generated script use.  Content that does not match its
tag surfaces later as a ``FormatError`` or as a failed pandas read inside the
sandbox.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

FormatTag = Literal["csv", "json", "excel", "unknown"]

CSV_SUFFIXES = {".csv"}
JSON_SUFFIXES = {".json"}
EXCEL_SUFFIXES = {".xlsx", ".xls", ".xlsm"}


def detect_format(path: str | Path) -> FormatTag:
    suffix = Path(path).suffix.lower()
    if suffix in CSV_SUFFIXES:
        return "csv"
    if suffix in JSON_SUFFIXES:
        return "json"
    if suffix in EXCEL_SUFFIXES:
        return "excel"
    return "unknown"
