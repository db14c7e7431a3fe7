"""Weekly availability table."""

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from ..database import Base


class WeeklyAvailabilityRecord(Base):
    """A teacher's recurring weekly schedule, stored whole (saves replace it)."""

    __tablename__ = "weekly_availability"

    teacher_id = Column(String(64), primary_key=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    # [{"day": "monday", "enabled": true, "ranges": [{"start": "09:00", "end": "12:00"}]}, ...]
    days = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
