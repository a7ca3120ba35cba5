from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text

from ..db.base import Base
from ..enums import JobStatus, JobType
from ..models.base import SoftDeleteMixin, TimeStampMixin


class ScheduledJob(Base, TimeStampMixin, SoftDeleteMixin):
    """
    A persisted one-shot campaign action.

    Status only moves scheduled -> completed or scheduled -> failed.
    """

    __tablename__ = "scheduled_jobs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    campaign_id = Column(Integer, ForeignKey("flash_sale_campaigns.id"), nullable=False, index=True)
    job_type = Column(Enum(JobType), nullable=False)
    scheduled_time = Column(DateTime, nullable=False)
    status = Column(Enum(JobStatus), default=JobStatus.SCHEDULED, nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    def __repr__(self):
        return f"<ScheduledJob(id={self.id}, campaign_id={self.campaign_id}, job_type={self.job_type}, status={self.status})>"
