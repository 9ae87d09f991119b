"""
Video processing endpoints.

Uploads are streamed to UPLOADS_DIR in chunks and handed to the analysis
backend registered for the activity. Results, preview frames and the
annotated video are served back from OUTPUTS_DIR.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse

from core.config import settings
from core.exceptions import PayloadTooLargeError, ValidationError
from schemas import LiveRecordingRequest
from services import video_processing
from services.analysis_backends import AnalysisRegistry, get_analysis_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["video"])

CHUNK_SIZE = 1024 * 1024
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _safe_filename(name: str) -> str:
    base = os.path.basename(name or "")
    if not base:
        return "upload.mp4"
    return "".join(ch if ch.isalnum() or ch in (".", "_", "-") else "_" for ch in base)[:180]


def _discard(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


async def _store_upload(video: UploadFile) -> str:
    """Stream the upload to UPLOADS_DIR; file I/O runs in the threadpool."""
    await run_in_threadpool(os.makedirs, settings.UPLOADS_DIR, exist_ok=True)
    stamp = int(datetime.now().timestamp() * 1000)
    stored_path = os.path.join(settings.UPLOADS_DIR, f"{stamp}_{_safe_filename(video.filename)}")

    total = 0
    try:
        out = await run_in_threadpool(open, stored_path, "wb")
        try:
            while True:
                chunk = await video.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > settings.MAX_VIDEO_BYTES:
                    raise PayloadTooLargeError("Video file too large")
                await run_in_threadpool(out.write, chunk)
        finally:
            await run_in_threadpool(out.close)
    except Exception:
        await run_in_threadpool(_discard, stored_path)
        raise
    finally:
        await video.close()

    logger.info(f"Stored upload {stored_path} ({total} bytes)")
    return stored_path


@router.get("/health")
def health():
    return {
        "status": "ok",
        "message": "Server is running",
        "port": settings.API_PORT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/test")
def test(registry: AnalysisRegistry = Depends(get_analysis_registry)):
    return {"message": "Backend is working!", "availableWorkouts": registry.activities()}


@router.post("/process-video")
async def process_video(
    video: Optional[UploadFile] = File(None),
    activityName: Optional[str] = Form(None),
    mode: Optional[str] = Form(None),
    registry: AnalysisRegistry = Depends(get_analysis_registry),
):
    """
    Analyse an uploaded workout video.

    The analysis runs in a worker thread; the request waits for it.
    """
    logger.info(
        "New video processing request",
        extra={"extra_fields": {"activity": activityName, "mode": mode}},
    )
    if video is None or not video.filename:
        raise ValidationError("No video file provided", field="video")
    if not (video.content_type or "").startswith("video/"):
        raise ValidationError("Only video files are allowed!", field="video")

    registry.get(activityName).ensure_available()

    stored_path = await _store_upload(video)
    result = await run_in_threadpool(video_processing.process_video, registry, activityName, stored_path)
    return {"success": True, **result}


@router.post("/start-live-recording")
def start_live_recording(
    request: LiveRecordingRequest,
    registry: AnalysisRegistry = Depends(get_analysis_registry),
):
    result = video_processing.start_live_recording(registry, request.activityName)
    return {"success": True, **result}


@router.get("/results/{output_id}")
def results(output_id: str):
    return video_processing.get_results(output_id)


@router.get("/frames/{output_id}")
def frames(output_id: str):
    found = video_processing.list_frames(output_id)
    return {"frames": found, "count": len(found)}


@router.get("/frame/{output_id}/{filename}")
def frame(output_id: str, filename: str):
    return FileResponse(video_processing.frame_path_for(output_id, filename), media_type="image/jpeg")


@router.get("/video/{output_id}/{filename}")
def video(output_id: str, filename: str):
    return FileResponse(
        video_processing.video_path_for(output_id, filename),
        media_type="video/mp4",
        headers=NO_CACHE_HEADERS,
    )
