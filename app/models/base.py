from sqlalchemy import Boolean, Column, DateTime, false

from ..db.base import Base
from ..utils import utcnow


class TimeStampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin:
    is_deleted = Column(Boolean, default=False, server_default=false(), nullable=False)


__all__ = ["Base", "TimeStampMixin", "SoftDeleteMixin"]
