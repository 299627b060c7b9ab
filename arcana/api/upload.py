"""
File uploads for catalog images and other assets.

Files are stored through the database facade, so they land in local storage,
a Supabase bucket or Firebase Storage depending on the active provider.
"""
import logging
import uuid
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, Any, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from arcana.api.deps import get_current_user, get_database
from arcana.db.database import DatabaseService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["upload"])

MAX_FILE_SIZE = 5 * 1024 * 1024


def stored_name(original_name: str) -> str:
    """Random storage name that keeps the original extension."""
    suffix = PurePosixPath(original_name.replace("\\", "/")).suffix.lower()
    return f"{uuid.uuid4()}{suffix}"


@router.post("/upload")
async def upload_files(
    files: Optional[List[UploadFile]] = File(default=None),
    db: DatabaseService = Depends(get_database),
    user: Dict[str, Any] = Depends(get_current_user),
):
    named = [f for f in (files or []) if f.filename]
    if not named:
        raise HTTPException(status_code=400, detail="No files provided")

    # Read and validate everything before storing anything
    contents = []
    for upload in named:
        content = await upload.read()
        if len(content) > MAX_FILE_SIZE:
            raise HTTPException(status_code=400, detail=f"File {upload.filename} is too large. Maximum size is 5MB.")
        contents.append((upload, content))

    stored = []
    for upload, content in contents:
        filename = stored_name(upload.filename)
        url = await run_in_threadpool(db.upload, content, filename, upload.content_type)
        stored.append({
            "id": str(uuid.uuid4()),
            "filename": filename,
            "original_name": upload.filename,
            "url": url,
            "size": len(content),
            "type": upload.content_type,
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
        })
    logger.info("User %s uploaded %d file(s)", user.get("id"), len(stored))
    return {"success": True, "data": stored, "message": f"{len(stored)} file(s) uploaded successfully"}
