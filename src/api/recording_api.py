"""
Slide Recording API
Records public presentations on a virtual display and stores the MP4 in MinIO

Endpoints:
- GET /health - Dependencies, storage connection, active jobs
- POST /record - Start a recording (body: {slideUrl, timings})
- GET /recording/{job_id} - Status of an active or recently finished job
- GET /recordings - Stored recordings plus active jobs
- DELETE /recording/{job_id} - Delete a stored recording

Usage:
    uvicorn src.api.recording_api:create_app --factory --host 0.0.0.0 --port 3003
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.recorder.config import RecorderConfig
from src.recorder.coordinator import RecordingCoordinator
from src.recorder.errors import InvalidRequestError, JobNotFoundError, RecorderBusyError, UploadError
from src.recorder.models import RecordingRequest, utcnow
from src.recorder.upload import UploadPipeline

logger = logging.getLogger(__name__)


# ========== MODELS ==========

class RecordRequest(BaseModel):
    slideUrl: str  # Presentation URL (edit or present link)
    timings: list[float] = Field(..., min_length=1)  # Seconds at which to advance


class RecordResponse(BaseModel):
    jobId: str
    status: str  # always "started"
    estimatedDurationSeconds: float
    message: str


# ========== HELPERS ==========

# "/present" as a path segment, not the "/presentation" prefix
_PRESENT_SEGMENT = re.compile(r"/present(?:[/?#]|$)")


def to_present_url(url: str) -> str:
    """Rewrite an editor link to the presentation-mode link"""
    if _PRESENT_SEGMENT.search(url):
        return url
    if "/edit" in url:
        return url.replace("/edit", "/present", 1)
    return url.replace("#", "/present#", 1)


def get_coordinator(request: Request) -> RecordingCoordinator:
    return request.app.state.coordinator


def get_config(request: Request) -> RecorderConfig:
    return request.app.state.config


async def invalid_body_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """400 instead of FastAPI's default 422, with readable messages"""
    logger.error(f"Invalid request body: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid request body",
            "errors": [
                f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
                for err in exc.errors()
            ],
        },
    )


# ========== ENDPOINTS ==========

router = APIRouter()


@router.get("/health")
async def health(
    coordinator: RecordingCoordinator = Depends(get_coordinator),
    config: RecorderConfig = Depends(get_config),
):
    """Health Check"""
    missing = sorted(coordinator.checker.check())
    uploader = coordinator.uploader

    storage = {"status": "disabled"}
    if uploader is not None:
        storage = {
            "status": "connected" if await uploader.is_reachable() else "unreachable",
            "endpoint": config.storage.public_base_url.rsplit("/", 1)[0],
            "bucket": config.storage.bucket,
        }

    return {
        "status": "healthy" if not missing else "unhealthy",
        "dependencies": "all found" if not missing else f"missing: {', '.join(missing)}",
        "storage": storage,
        "activeJobId": coordinator.active_job_id,
        "timestamp": utcnow().isoformat(),
    }


@router.post("/record", response_model=RecordResponse)
async def start_recording(
    body: RecordRequest,
    coordinator: RecordingCoordinator = Depends(get_coordinator),
    config: RecorderConfig = Depends(get_config),
):
    """
    Start a recording in the background.

    Returns the job id immediately; poll GET /recording/{job_id} for progress.
    """
    if config.source_url_marker and config.source_url_marker not in body.slideUrl:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid URL. Must contain '{config.source_url_marker}'.",
        )

    try:
        request = RecordingRequest(source_url=to_present_url(body.slideUrl), timings=tuple(body.timings))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        admission = coordinator.submit(request)
    except RecorderBusyError as e:
        raise HTTPException(status_code=429, detail=str(e))

    logger.info(f"Admitted recording {admission.job_id} for {request.source_url}")
    return RecordResponse(
        jobId=admission.job_id,
        status=admission.status,
        estimatedDurationSeconds=admission.estimated_duration_seconds,
        message="Recording started. Use GET /recording/{jobId} to check progress.",
    )


@router.get("/recording/{job_id}")
async def recording_status(job_id: str, coordinator: RecordingCoordinator = Depends(get_coordinator)):
    try:
        return coordinator.status(job_id).to_dict()
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/recordings")
async def list_recordings(coordinator: RecordingCoordinator = Depends(get_coordinator)):
    stored = []
    if coordinator.uploader is not None:
        try:
            stored = [r.to_dict() for r in await coordinator.uploader.list_recordings()]
        except UploadError as e:
            raise HTTPException(status_code=502, detail=str(e))

    return {
        "recordings": stored,
        "active": [job.to_dict() for job in coordinator.jobs()],
        "count": len(stored),
        "totalSizeMB": round(sum(r["fileSizeMB"] for r in stored), 2),
    }


@router.delete("/recording/{job_id}")
async def delete_recording(job_id: str, coordinator: RecordingCoordinator = Depends(get_coordinator)):
    if coordinator.uploader is None:
        raise HTTPException(status_code=503, detail="Object storage not configured")
    try:
        deleted = await coordinator.uploader.delete_recording(job_id)
    except UploadError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Recording not found in storage")
    return {"success": True, "message": "Recording deleted"}


# ========== APP ==========

def create_app(
    coordinator: Optional[RecordingCoordinator] = None,
    config: Optional[RecorderConfig] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Without arguments, configuration comes from the environment and recordings
    go to MinIO; the bucket is provisioned on startup.
    """
    if coordinator is None:
        config = config or RecorderConfig.from_env()
        coordinator = RecordingCoordinator(config, uploader=UploadPipeline(config.storage))
    config = config or coordinator.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if coordinator.uploader is not None:
            await coordinator.uploader.ensure_bucket()
        missing = coordinator.checker.check()
        if missing:
            logger.warning(f"Missing dependencies: {', '.join(sorted(missing))}")
        yield
        logger.info("Shutting down server...")
        await coordinator.shutdown()

    app = FastAPI(
        title="Slide Recorder",
        description="Records public presentations into MP4 videos",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, invalid_body_handler)
    app.include_router(router)
    return app
