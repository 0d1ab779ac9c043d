from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Subject id issued by the external identity provider (nullable for locally seeded users)
    external_id = Column(String(255), unique=True, index=True, nullable=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    plan = Column(String(50), nullable=False, default="free")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships (owned by other features; read-only here)
    applied_jobs = relationship("AppliedJob", back_populates="user")
    ats_scores = relationship("AtsScore", back_populates="user")
