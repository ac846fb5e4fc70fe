"""
Media Job API Endpoints

Remote downloads, trimming, frame extraction and the progress stream.

Jobs run inside the request: the response is sent once the engine has
finished. Clients that want live progress open ``/progress/{task_id}``
with the task id they pass in the body (or the one returned afterwards).
Every output file is tracked in the caller's session before responding.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from dependencies import (
    get_download_pipeline,
    get_session_id,
    get_session_registry,
    get_task_tracker,
    get_transcode_orchestrator,
)
from schemas import DownloadUrlRequest, ExtractFramesRequest, TrimRequest
from services.download_pipeline import DownloadPipeline
from services.session_registry import SessionRegistry
from services.task_tracker import TaskProgressTracker
from services.transcode_orchestrator import TranscodeOrchestrator
from utils.error_handlers import handle_api_errors

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/download-url")
@handle_api_errors("Download")
async def download_url(
    request: DownloadUrlRequest,
    session_id: str = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
    pipeline: DownloadPipeline = Depends(get_download_pipeline),
):
    """
    Fetch a remote video into the scratch directory.

    Video-platform links go through the download tools and are converted
    to H.264/AAC; anything else is downloaded as-is.
    """
    result = await pipeline.download(request.url)
    registry.track(session_id, result.path)

    return {
        "filename": result.filename,
        "path": pipeline.orchestrator.public_path(result.path),
        "fullPath": str(result.path),
        "sessionId": session_id,
        "source": result.source,
    }


@router.get("/progress/{task_id}")
async def stream_progress(
    task_id: str,
    request: Request,
    tracker: TaskProgressTracker = Depends(get_task_tracker),
):
    """
    Server-Sent Events stream of a task's progress.

    Emits ``data: {"progress": n}`` every poll interval while the task is
    known and ends after 100. Unknown or failed tasks produce no events.
    """
    async def event_stream():
        async for snapshot in tracker.subscribe(task_id, request.is_disconnected):
            yield f"data: {json.dumps(snapshot)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/trim")
@handle_api_errors("Trim", failure_message="FFmpeg trim error")
async def trim_media(
    request: TrimRequest,
    session_id: str = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
    orchestrator: TranscodeOrchestrator = Depends(get_transcode_orchestrator),
):
    """Cut [startTime, startTime + duration) out of an uploaded file."""
    input_path = orchestrator.resolve_input(request.filename)

    result = await orchestrator.trim(
        input_path,
        request.start_time,
        request.duration,
        is_audio=request.is_audio,
        task_id=request.task_id,
    )
    registry.track(session_id, result.path)

    return {
        "filename": result.filename,
        "path": orchestrator.public_path(result.path),
        "taskId": result.task_id,
    }


@router.post("/extract-frames")
@handle_api_errors("Frame extraction", failure_message="FFmpeg extraction error")
async def extract_frames(
    request: ExtractFramesRequest,
    session_id: str = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_session_registry),
    orchestrator: TranscodeOrchestrator = Depends(get_transcode_orchestrator),
):
    """
    Sample still frames from an uploaded video.

    ``mode`` is ``interval`` (one frame every ``interval`` seconds) or
    ``count`` (``count`` frames spread over ``duration`` seconds).
    """
    input_path = orchestrator.resolve_input(request.filename)

    result = await orchestrator.extract_frames(
        input_path,
        request.mode,
        interval=request.interval,
        count=request.count,
        total_duration=request.duration,
        task_id=request.task_id,
    )
    for frame_file in result.files:
        registry.track(session_id, frame_file)

    logger.info(f"🖼️ Extracted {len(result.frames)} frame(s) from {input_path.name}")
    return {"frames": result.frames, "taskId": result.task_id}
