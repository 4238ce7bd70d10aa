from __future__ import annotations

import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

from datachat.core.schema import FileDescriptor


def save_upload(root: Path, filename: str, source: BinaryIO) -> FileDescriptor:
    """Persist an uploaded file under its own directory and describe it."""

    safe_name = Path(filename).name
    if not safe_name or safe_name in {".", ".."}:
        raise ValueError("uploaded file must have a filename")
    target_dir = root / uuid.uuid4().hex
    target_dir.mkdir(parents=True, exist_ok=False)
    target = target_dir / safe_name
    with target.open("wb") as buffer:
        shutil.copyfileobj(source, buffer)
    return FileDescriptor.from_path(safe_name, target)


def resolve_stored_path(root: Path, storage_path: str) -> Path:
    """Resolve a client supplied storage path, refusing anything outside ``root``."""

    base = root.resolve()
    candidate = Path(storage_path)
    if not candidate.is_absolute():
        candidate = base / candidate
    candidate = candidate.resolve()
    if not candidate.is_relative_to(base):
        raise ValueError(f"storage path is outside the upload area: {storage_path}")
    return candidate
