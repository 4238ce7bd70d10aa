from __future__ import annotations

from fastapi import APIRouter, File, HTTPException, UploadFile

from datachat.core.settings import get_settings
from datachat.core.storage import save_upload

router = APIRouter(prefix="/uploads", tags=["upload"])


@router.post("")
async def upload_files(files: list[UploadFile] = File(...)) -> dict:
    """Store one or more data files and return their descriptors."""
    if not files:
        raise HTTPException(status_code=400, detail="At least one file must be provided")

    root = get_settings().uploads_root
    items: list[dict] = []
    for upload in files:
        try:
            if not upload.filename:
                raise HTTPException(status_code=400, detail="Uploaded file must have a filename")
            try:
                descriptor = save_upload(root, upload.filename, upload.file)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            items.append(descriptor.model_dump(mode="json"))
        finally:
            await upload.close()

    return {"items": items}
