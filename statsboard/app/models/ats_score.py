from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class AtsScore(Base):
    """
    One resume-vs-job-description scoring run.
    Producers guarantee 0 <= score <= 100; readers trust the row.
    """
    __tablename__ = "ats_scores"
    __table_args__ = (
        Index("ix_ats_scores_user_created_at", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    resume_id = Column(Integer, nullable=True)
    score = Column(Integer, nullable=False)
    resume_text = Column(Text, nullable=True)
    job_description = Column(Text, nullable=True)
    # JSON object: missingKeywords / recommendations / strengths / weaknesses (lists of strings)
    analysis_json = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="ats_scores")
