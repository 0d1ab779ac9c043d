from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base

APPLICATION_STATUSES = ("Applied", "Saved", "Assessment", "Interviewing", "Offer", "Rejected")
DEFAULT_APPLICATION_STATUS = "Applied"


class AppliedJob(Base):
    """
    One job a user is tracking.
    Written by the job tracker feature; the analytics summary only reads it.
    """
    __tablename__ = "applied_jobs"
    __table_args__ = (
        Index("ix_applied_jobs_user_applied_at", "user_id", "applied_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    # Nullable at the storage level: older rows and imports may lack it.
    company = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    url = Column(String(500), nullable=True)
    match_score = Column(Float, nullable=True)  # 0-100
    status = Column(String(20), nullable=False, default=DEFAULT_APPLICATION_STATUS)
    applied_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="applied_jobs")
