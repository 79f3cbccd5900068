import os
from datetime import datetime
from typing import Any, Dict, Tuple

from ..exceptions import PersistenceError
from ..inference.imaging import extract_metadata, run_blocking, write_artifact
from ..logger import logger
from ..models import GenerationJob, artifact_dir


def _store(root: str, day: datetime, filename: str, data: bytes) -> Tuple[str, Dict[str, Any]]:
    filepath = write_artifact(artifact_dir(root, day), filename, data)
    return filepath, extract_metadata(filepath)


async def store_artifact(
    job: GenerationJob,
    root: str,
    filename: str,
    data: bytes,
    day: datetime,
) -> Tuple[str, Dict[str, Any]]:
    """
    Write a job's artifact under <root>/YYYY/MM/DD of `day` and read back its
    metadata. Returns the path relative to `root` and the metadata dict.
    Filesystem failures raise PersistenceError.
    """
    try:
        filepath, metadata = await run_blocking(_store, root, day, filename, data)
    except OSError as e:
        logger.error(f"Failed to store artifact for job {job.job_id}: {e}", extra={"job_id": job.job_id})
        raise PersistenceError(f"Failed to store artifact: {e}")
    relative = os.path.relpath(filepath, root).replace(os.sep, "/")
    logger.info(
        f"Stored artifact for job {job.job_id}",
        extra={"job_id": job.job_id, "path": relative, "bytes": len(data)},
    )
    return relative, metadata


def resolve_artifact(root: str, relative_path: str) -> str:
    """Map a relative photo path back to the filesystem, refusing escapes from `root`."""
    root_abs = os.path.abspath(root)
    candidate = os.path.abspath(os.path.join(root_abs, relative_path))
    if os.path.commonpath([root_abs, candidate]) != root_abs:
        raise ValueError(f"Path escapes storage root: {relative_path}")
    return candidate
