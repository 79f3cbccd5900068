from typing import Any, Callable, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from ..db import AsyncSessionLocal
from ..exceptions import JobNotFoundError, PersistenceError
from ..logger import logger
from ..models import GenerationJob
from ..prompts.commands import CommandRequest
from ..prompts.parameters import ParameterSet, ParseError, Preset
from ..prompts.parser import parse


class JobStore:
    """
    Loads and saves GenerationJob rows. Each call opens its own session so a
    job object can outlive the session that created it.
    """

    def __init__(self, session_factory: Callable[[], Any] = AsyncSessionLocal):
        self._session_factory = session_factory

    async def create(self, **fields: Any) -> GenerationJob:
        job = GenerationJob(**fields)
        try:
            async with self._session_factory() as db:
                db.add(job)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create job: {e}", extra={"job_id": job.job_id})
            raise PersistenceError(f"Failed to create job: {e}")
        logger.info(
            f"Created job {job.job_id}",
            extra={"job_id": job.job_id, "user_id": job.user_id, "workflow_type": job.workflow_type},
        )
        return job

    async def save(self, job: GenerationJob) -> bool:
        """
        Persist the in-memory state of `job`. A database failure is logged
        and swallowed; the caller keeps working with the in-memory object.
        """
        try:
            async with self._session_factory() as db:
                await db.merge(job)
                await db.commit()
            return True
        except SQLAlchemyError as e:
            logger.warning(
                f"Persistence warning for job {job.job_id}: {e}",
                extra={"job_id": job.job_id, "status": job.status, "error_code": PersistenceError().code},
            )
            return False

    async def get(self, job_id: str) -> Optional[GenerationJob]:
        async with self._session_factory() as db:
            res = await db.execute(select(GenerationJob).filter(GenerationJob.job_id == job_id))
            return res.scalar_one_or_none()

    async def get_or_raise(self, job_id: str) -> GenerationJob:
        """Load a live job; missing and soft-deleted jobs both raise JobNotFoundError."""
        job = await self.get(job_id)
        if job is None or job.is_deleted:
            raise JobNotFoundError(job_id)
        return job

    async def submit(
        self,
        user_id: str,
        username: Optional[str],
        text: str,
        default_model: Optional[str] = None,
        presets: Optional[Mapping[str, Preset]] = None,
    ) -> Union[GenerationJob, CommandRequest, ParseError]:
        """
        Parse user text and create a pending job for it. Commands and parse
        errors are handed back untouched for the caller to deal with.
        """
        result = parse(text, default_model, presets)
        if not isinstance(result, ParameterSet):
            return result
        return await self.create(
            user_id=user_id,
            username=username,
            prompt=text,
            parameters=result.as_dict(),
            workflow_type=result.model,
            private=bool(result.get("private")),
        )
