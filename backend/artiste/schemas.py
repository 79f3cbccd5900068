"""
Pydantic schemas for request/response validation
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Union
from datetime import datetime

# ===== Common Schemas =====

class ApiError(BaseModel):
    error: str
    message: Union[str, List[Any], Dict[str, Any], None] = None
    status_code: Optional[int] = None

class HealthResponse(BaseModel):
    status: str

class VersionResponse(BaseModel):
    name: str
    version: str
    backend: str

# ===== Job Schemas =====

class CreateJobRequest(BaseModel):
    user_id: str = Field(min_length=1)
    username: Optional[str] = None
    prompt: str = Field(min_length=1)
    default_model: Optional[str] = None

class JobStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_id: str
    status: str
    user_id: str
    username: Optional[str] = None
    prompt: str
    workflow_type: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    private: bool = False
    prompt_id: Optional[str] = None
    output_filename: Optional[str] = None
    error_message: Optional[str] = None
    queued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    processing_time_seconds: Optional[float] = None

# ===== Notification Schemas =====

class NotificationEvent(BaseModel):
    """Gallery event pushed to subscribers; extra keys pass through untouched."""
    model_config = ConfigDict(extra="allow")

    type: str
    photo_path: Optional[str] = None
    photo_url: Optional[str] = None
    task: Optional[Dict[str, Any]] = None

class BroadcastResponse(BaseModel):
    status: str
    subscribers: int
