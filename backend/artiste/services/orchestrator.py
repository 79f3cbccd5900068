import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..exceptions import ArtisteBaseException, BackendTransportError
from ..inference.base import EventCallback, EventKind, GenerationBackend, GenerationEvent, emit
from ..logger import logger
from ..models import GenerationJob
from ..notifications.hub import NotificationHub
from .jobs import JobStore
from .storage import store_artifact


@dataclass
class GenerationOutcome:
    job: GenerationJob
    success: bool
    photo_path: Optional[str] = None
    error: Optional[str] = None


class GenerationOrchestrator:
    """
    Drives one job through a backend: keeps the job record in step with the
    backend's events, stores the artifact and announces it on the hub.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        store: JobStore,
        hub: Optional[NotificationHub],
        photos_root: str,
        max_wait_seconds: float,
    ):
        self.backend = backend
        self.store = store
        self.hub = hub
        self.photos_root = photos_root
        self.max_wait_seconds = max_wait_seconds

    def _event_handler(self, job: GenerationJob, listener: Optional[EventCallback]) -> EventCallback:
        async def on_event(event: GenerationEvent) -> None:
            changed = False
            if event.prompt_id and job.prompt_id != event.prompt_id:
                job.assign_prompt_id(event.prompt_id)
                changed = True
            if event.kind == EventKind.RUNNING:
                changed = job.mark_processing(event.prompt_id) or changed
            elif event.kind == EventKind.PROGRESS:
                logger.info(
                    f"Job {job.job_id} progress: {', '.join(str(p) for p in event.progress)}%",
                    extra={"job_id": job.job_id, "prompt_id": event.prompt_id, "progress": event.progress},
                )
            if changed:
                await self.store.save(job)
            await emit(listener, event)

        return on_event

    async def run(
        self,
        job: GenerationJob,
        params: Optional[Dict[str, Any]] = None,
        listener: Optional[EventCallback] = None,
    ) -> GenerationOutcome:
        params = params if params is not None else dict(job.parameters or {})
        on_event = self._event_handler(job, listener)

        logger.info(
            f"Starting generation for job {job.job_id}",
            extra={"job_id": job.job_id, "backend": self.backend.name, "model": params.get("model")},
        )

        try:
            if self.backend.supports_progress:
                result = await self.backend.generate_and_wait(params, self.max_wait_seconds, on_event)
            else:
                # No running signal will arrive, the job is processing from here on.
                if job.mark_processing():
                    await self.store.save(job)
                result = await self.backend.generate(params, on_event)

            # A fast job can finish between two queue polls without a running signal.
            job.mark_processing()
            finished_at = datetime.now()
            photo_path, metadata = await store_artifact(
                job, self.photos_root, result.filename, result.image_data, finished_at
            )
            job.mark_completed(result.filename, result.prompt_id, completed_at=finished_at)
            job.exif_data = metadata
            await self.store.save(job)
        except ArtisteBaseException as e:
            return await self._fail(job, e)
        except Exception as e:
            logger.error(
                f"Unexpected error during generation for job {job.job_id}: {e}",
                extra={"job_id": job.job_id, "traceback": traceback.format_exc()},
            )
            return await self._fail(job, BackendTransportError(f"{type(e).__name__}: {e}"))

        logger.info(
            f"Job {job.job_id} completed",
            extra={
                "job_id": job.job_id,
                "prompt_id": job.prompt_id,
                "photo_path": photo_path,
                "processing_time": job.processing_time_seconds,
            },
        )
        if self.hub is not None:
            await self.hub.notify_new_photo(photo_path, job.to_summary())
        return GenerationOutcome(job=job, success=True, photo_path=photo_path)

    async def _fail(self, job: GenerationJob, error: ArtisteBaseException) -> GenerationOutcome:
        logger.error(
            f"Generation failed for job {job.job_id}: {error.message}",
            extra={"job_id": job.job_id, "error_code": error.code, "prompt_id": job.prompt_id},
        )
        if not job.is_terminal:
            job.mark_failed(error.message)
            await self.store.save(job)
        return GenerationOutcome(job=job, success=False, error=error.message)
