"""
Session API Endpoints

Upload, heartbeat and explicit cleanup. Every request is attributed to the
session named by the ``x-session-id`` header (or the shared default).
"""
import logging
import time
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from constants import DownloadConfig, HTTPStatus, ServerConfig
from dependencies import get_session_id, get_session_registry, get_upload_dir
from services.session_registry import SessionRegistry
from utils.error_handlers import error_response, handle_api_errors

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload")
@handle_api_errors("Upload")
async def upload_media(
    media: Optional[UploadFile] = File(None),
    session_id: str = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
    upload_dir: Path = Depends(get_upload_dir),
):
    """
    Store an uploaded media file in the scratch directory.

    The stored name is ``<epoch-ms>-<original name>``; the file belongs to
    the caller's session from this point on.
    """
    if media is None or not media.filename:
        return error_response(HTTPStatus.BAD_REQUEST, "No file uploaded")

    original_name = Path(media.filename).name
    filename = f"{int(time.time() * 1000)}-{original_name}"
    upload_dir.mkdir(parents=True, exist_ok=True)
    full_path = upload_dir / filename

    try:
        with open(full_path, 'wb') as f:
            while True:
                chunk = await media.read(DownloadConfig.CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
    except Exception as e:
        # Nothing tracks the file yet, so a partial write has to go now
        logger.error(f"Upload of {original_name} failed, removing partial file: {e}")
        full_path.unlink(missing_ok=True)
        raise

    registry.track(session_id, full_path)
    logger.info(f"📥 Uploaded {original_name} as {filename} (session {session_id})")

    return {
        "filename": filename,
        "path": f"{ServerConfig.UPLOADS_PREFIX}/{filename}",
        "fullPath": str(full_path),
        "sessionId": session_id,
    }


@router.post("/heartbeat")
def heartbeat(
    session_id: str = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Keep the session alive."""
    registry.touch(session_id)
    return {"ok": True}


@router.post("/cleanup")
def cleanup_session(
    session_id: str = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Delete every file the session owns. Safe to call repeatedly."""
    removed = registry.cleanup(session_id)
    logger.info(f"Session {session_id} cleaned up on request ({removed} item(s) removed)")
    return {"ok": True, "message": "Session cleaned up"}
