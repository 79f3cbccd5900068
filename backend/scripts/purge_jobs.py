from __future__ import annotations

import argparse
import asyncio
import os
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import delete, func, select

from artiste.config import settings
from artiste.db import AsyncSessionLocal
from artiste.logger import logger
from artiste.models import GenerationJob


@dataclass(frozen=True)
class PurgeCounts:
    jobs: int
    deleted_jobs: int


async def _get_counts(session_factory: Callable) -> PurgeCounts:
    async with session_factory() as db:
        jobs = (await db.execute(select(func.count()).select_from(GenerationJob))).scalar_one()
        deleted_jobs = (
            await db.execute(
                select(func.count()).select_from(GenerationJob).where(GenerationJob.deleted_at.is_not(None))
            )
        ).scalar_one()
        return PurgeCounts(jobs=int(jobs), deleted_jobs=int(deleted_jobs))


def _remove_artifact(job: GenerationJob, photos_root: str) -> bool:
    if not job.output_filename or job.completed_at is None:
        return False
    path = os.path.join(job.storage_dir(photos_root), job.output_filename)
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


async def purge_jobs(
    *,
    yes: bool,
    remove_files: bool = False,
    photos_root: Optional[str] = None,
    session_factory: Callable = AsyncSessionLocal,
) -> PurgeCounts:
    """
    Hard-delete soft-deleted jobs (deleted_at set), optionally removing their
    artifacts from the photo store too.
    """
    photos_root = photos_root or settings.PHOTOS_ROOT
    before = await _get_counts(session_factory)
    logger.warning(
        "Purge deleted jobs requested",
        extra={"before": {"jobs": before.jobs, "deleted_jobs": before.deleted_jobs}},
    )

    if not yes:
        raise SystemExit(
            "Refusing to run without --yes. "
            f"This will permanently DELETE {before.deleted_jobs} soft-deleted jobs."
        )

    async with session_factory() as db:
        res = await db.execute(select(GenerationJob).where(GenerationJob.deleted_at.is_not(None)))
        jobs = res.scalars().all()
        removed_files = 0
        if remove_files:
            for job in jobs:
                if _remove_artifact(job, photos_root):
                    removed_files += 1
        await db.execute(delete(GenerationJob).where(GenerationJob.deleted_at.is_not(None)))
        await db.commit()

    after = await _get_counts(session_factory)
    logger.warning(
        "Purge deleted jobs completed",
        extra={
            "after": {"jobs": after.jobs, "deleted_jobs": after.deleted_jobs},
            "removed_files": removed_files,
        },
    )
    return after


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Permanently delete soft-deleted generation jobs from the database.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm destructive action (required).",
    )
    parser.add_argument(
        "--remove-files",
        action="store_true",
        help="Also delete the jobs' artifacts under PHOTOS_ROOT.",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    asyncio.run(purge_jobs(yes=bool(args.yes), remove_files=bool(args.remove_files)))


if __name__ == "__main__":
    main()
