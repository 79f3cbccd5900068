from celery import Celery
from .config import settings

GENERATION_QUEUE = "generation"


def _route_task(name, args, kwargs, options, task=None):
    """
    Route generation tasks to their own queue so GPU-bound work can be
    consumed by dedicated workers.
    """
    if name == "artiste.tasks.generate_image_task":
        return {"queue": GENERATION_QUEUE}
    return None


celery_app = Celery(
    "artiste",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["artiste.tasks"]
)

celery_app.conf.update(
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    # Must outlive GENERATION_TIMEOUT_SECONDS or the broker redelivers running jobs.
    broker_transport_options={"visibility_timeout": int(settings.GENERATION_TIMEOUT_SECONDS) + 600},
    task_routes=(_route_task,),
)
