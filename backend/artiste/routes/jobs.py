"""
Generation job routes
"""
import os

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse

from ..config import settings
from ..exceptions import ParameterError
from ..prompts.commands import CommandRequest
from ..prompts.parameters import ParseError
from ..schemas import ApiError, CreateJobRequest, JobStatusResponse
from ..services.jobs import JobStore
from ..services.storage import resolve_artifact
from ..logger import logger

router = APIRouter(tags=["Jobs"])


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def enqueue_generation(job_id: str) -> None:
    from ..tasks import generate_image_task

    generate_image_task.apply_async(args=(job_id,))


@router.post("/jobs", response_model=JobStatusResponse, status_code=202, responses={400: {"model": ApiError}})
async def create_job(
    payload: CreateJobRequest,
    request: Request,
    store: JobStore = Depends(get_job_store),
):
    """
    Parse a prompt, create a pending job for it and queue the generation.
    Slash commands belong to chat adapters and are rejected here.
    """
    result = await store.submit(
        user_id=payload.user_id,
        username=payload.username,
        text=payload.prompt,
        default_model=payload.default_model or settings.DEFAULT_MODEL,
    )
    if isinstance(result, ParseError):
        raise ParameterError(result.message)
    if isinstance(result, CommandRequest):
        raise ParameterError(f"Commands are not accepted here: {result.kind.value}")

    request.app.state.enqueue(result.job_id)
    logger.info(f"Job {result.job_id} queued for generation", extra={"job_id": result.job_id})
    return JobStatusResponse.model_validate(result)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse, responses={404: {"model": ApiError}})
async def get_job_status(job_id: str, store: JobStore = Depends(get_job_store)):
    """
    Get current status of a job.
    """
    job = await store.get_or_raise(job_id)
    return JobStatusResponse.model_validate(job)


@router.get("/photo/{photo_path:path}", responses={404: {"model": ApiError}})
async def get_photo(photo_path: str):
    """
    Serve a stored artifact by its path relative to PHOTOS_ROOT.
    """
    try:
        filepath = resolve_artifact(settings.PHOTOS_ROOT, photo_path)
    except ValueError:
        raise HTTPException(status_code=404, detail="Photo not found")
    if not os.path.isfile(filepath):
        raise HTTPException(status_code=404, detail="Photo not found")
    return FileResponse(filepath)
