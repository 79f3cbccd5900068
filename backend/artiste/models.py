import os
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, Text, Boolean, DateTime, Float, JSON, Index

from .exceptions import InvalidJobStateError

Base = declarative_base()

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)


def _new_job_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now()


def artifact_dir(root: str, day: datetime) -> str:
    """<root>/YYYY/MM/DD for artifacts completed on `day`."""
    return os.path.join(root, day.strftime("%Y"), day.strftime("%m"), day.strftime("%d"))


class GenerationJob(Base):
    """
    One request to produce an artifact through a generation backend.

    Lifecycle: pending -> processing -> completed | failed. Terminal states
    never change again; every transition helper here only mutates the
    in-memory row, persisting is the job store's business.
    """
    __tablename__ = "generation_jobs"
    __table_args__ = (
        Index("ix_generation_jobs_user_status", "user_id", "status"),
    )

    job_id = Column(String, primary_key=True, default=_new_job_id)
    user_id = Column(String, nullable=False, index=True)
    username = Column(String, nullable=True)

    prompt = Column(Text, nullable=False)
    parameters = Column(JSON, nullable=True)
    workflow_type = Column(String, nullable=True)
    private = Column(Boolean, default=False, nullable=False)

    status = Column(String, default=STATUS_PENDING, nullable=False, index=True)
    queued_at = Column(DateTime, default=_now, nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    processing_time_seconds = Column(Float, nullable=True)

    prompt_id = Column(String, nullable=True, index=True)
    output_filename = Column(String, nullable=True, index=True)
    exif_data = Column(JSON, nullable=True)

    deleted_at = Column(DateTime, nullable=True, index=True)

    def __init__(self, **kwargs: Any):
        # Column defaults only fire on flush; the state machine needs them now.
        kwargs.setdefault("job_id", _new_job_id())
        kwargs.setdefault("status", STATUS_PENDING)
        kwargs.setdefault("queued_at", _now())
        kwargs.setdefault("private", False)
        super().__init__(**kwargs)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def assign_prompt_id(self, prompt_id: Optional[str]) -> None:
        """Set the backend correlation id. It is write-once."""
        if not prompt_id:
            return
        if self.prompt_id and self.prompt_id != prompt_id:
            raise InvalidJobStateError(self.job_id, f"prompt_id={self.prompt_id}", f"prompt_id={prompt_id}")
        self.prompt_id = prompt_id

    def mark_processing(self, prompt_id: Optional[str] = None) -> bool:
        """
        Enter `processing`. Returns False (and changes nothing) when the job is
        already processing or terminal, so repeated `running` signals are harmless.
        """
        if self.status != STATUS_PENDING:
            return False
        self.assign_prompt_id(prompt_id)
        self.status = STATUS_PROCESSING
        if self.started_at is None:
            self.started_at = _now()
        return True

    def mark_completed(
        self,
        output_filename: str,
        prompt_id: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        if self.is_terminal:
            raise InvalidJobStateError(self.job_id, self.status, STATUS_PROCESSING)
        if not output_filename:
            raise InvalidJobStateError(self.job_id, self.status, "completed with an output filename")
        self.assign_prompt_id(prompt_id)
        self.status = STATUS_COMPLETED
        self.completed_at = completed_at or _now()
        self.output_filename = output_filename
        self.error_message = None
        self._stamp_processing_time()

    def mark_failed(self, error_message: str) -> None:
        if self.is_terminal:
            raise InvalidJobStateError(self.job_id, self.status, STATUS_PROCESSING)
        self.status = STATUS_FAILED
        self.completed_at = _now()
        self.error_message = error_message or "Unknown error"
        self._stamp_processing_time()

    def _stamp_processing_time(self) -> None:
        if self.started_at and self.completed_at:
            self.processing_time_seconds = (self.completed_at - self.started_at).total_seconds()

    def storage_dir(self, root: str) -> str:
        """
        Directory holding this job's artifact: <root>/YYYY/MM/DD of the
        completion date. Filename lookups need nothing beyond the filesystem.
        """
        if self.completed_at is None:
            raise InvalidJobStateError(self.job_id, self.status, STATUS_COMPLETED)
        return artifact_dir(root, self.completed_at)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.job_id,
            "output_filename": self.output_filename,
            "username": self.username,
            "user_id": self.user_id,
            "workflow_type": self.workflow_type,
            "completed_at": self.completed_at.strftime("%Y-%m-%d %H:%M:%S") if self.completed_at else None,
            "private": bool(self.private),
            "prompt": self.prompt,
        }
