from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from ..enums import JobStatus, JobType


class ScheduledJobCreate(BaseModel):
    campaign_id: int
    job_type: JobType
    scheduled_time: Optional[datetime] = Field(
        None, description="Defaults to the campaign start or end date"
    )
    name: Optional[str] = None


class ScheduledJobUpdate(BaseModel):
    name: Optional[str] = None
    job_type: Optional[JobType] = None
    scheduled_time: Optional[datetime] = None


class ScheduledJobResponse(BaseModel):
    id: int
    name: str
    campaign_id: int
    job_type: JobType
    scheduled_time: datetime
    status: JobStatus
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
