import asyncio

from .workers import celery_app
from .config import settings
from .db import engine
from .inference.factory import create_backend
from .notifications.hub import NotificationHub
from .services.jobs import JobStore
from .services.orchestrator import GenerationOrchestrator
from .logger import logger


async def run_generation(job_id: str, store: JobStore = None, backend=None, hub: NotificationHub = None):
    store = store or JobStore()
    job = await store.get(job_id)
    if not job:
        logger.error(f"Job not found in database: {job_id}")
        return None

    if job.is_terminal:
        logger.warning(f"Job {job_id} already finished with status {job.status}, skipping")
        return None

    owns_backend = backend is None
    owns_hub = hub is None
    backend = backend or create_backend(settings)
    # Workers have no subscribers of their own; events reach the web
    # process through PEER_URL.
    hub = hub or NotificationHub(
        peer_url=settings.PEER_URL,
        peer_token=settings.PEER_TOKEN,
        storage_root=settings.PHOTOS_ROOT,
    )

    orchestrator = GenerationOrchestrator(
        backend=backend,
        store=store,
        hub=hub,
        photos_root=settings.PHOTOS_ROOT,
        max_wait_seconds=settings.GENERATION_TIMEOUT_SECONDS,
    )
    try:
        return await orchestrator.run(job)
    finally:
        if owns_backend:
            await backend.aclose()
        if owns_hub:
            await hub.aclose()


@celery_app.task(bind=True, acks_late=True)
def generate_image_task(self, job_id: str):
    """
    Celery task running one generation job to completion.
    """
    async def _run():
        logger.info(f"Starting image generation for job: {job_id}")
        try:
            outcome = await run_generation(job_id)
        finally:
            # pooled connections are bound to this event loop
            await engine.dispose()
        if outcome is None:
            return None
        logger.info(
            f"Generation task finished for job {job_id}",
            extra={"job_id": job_id, "success": outcome.success, "error": outcome.error},
        )
        return {"job_id": job_id, "success": outcome.success, "photo_path": outcome.photo_path, "error": outcome.error}

    return asyncio.run(_run())
