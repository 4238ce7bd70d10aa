from __future__ import annotations

from fastapi import APIRouter, HTTPException

from datachat.core.schema import FileDescriptor
from datachat.core.settings import get_settings
from datachat.core.storage import resolve_stored_path
from datachat.workers.pipeline import AnalysisRequest, get_analysis_pipeline

router = APIRouter(tags=["analysis"])


def _parse_files(raw_files: object) -> list[FileDescriptor]:
    if not isinstance(raw_files, list) or not raw_files:
        raise HTTPException(status_code=400, detail="At least one file is required")

    root = get_settings().uploads_root
    descriptors: list[FileDescriptor] = []
    for item in raw_files:
        if not isinstance(item, dict):
            raise HTTPException(status_code=400, detail="Each file must be an object with name and storage_path")
        name = str(item.get("name") or "").strip()
        storage_path = str(item.get("storage_path") or "").strip()
        if not name or not storage_path:
            raise HTTPException(status_code=400, detail="Each file requires name and storage_path")
        try:
            path = resolve_stored_path(root, storage_path)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        descriptors.append(FileDescriptor.from_path(name, path))
    return descriptors


@router.post("/analyze")
async def analyze(payload: dict) -> dict:
    message = str(payload.get("message") or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="message is required")
    files = _parse_files(payload.get("files"))

    pipeline = get_analysis_pipeline()
    outcome = await pipeline.run(AnalysisRequest(user_request=message, files=files))
    return outcome.to_response().model_dump(mode="json")
