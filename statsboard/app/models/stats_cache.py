from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ..database import Base


class StatsCache(Base):
    """
    Precomputed analytics summaries.
    Key: "stats:user:<owner id>". Rows past expires_at are treated as absent.
    """
    __tablename__ = "stats_cache"

    id = Column(Integer, primary_key=True, index=True)
    cache_key = Column(String(128), unique=True, nullable=False, index=True)
    payload_json = Column(Text, nullable=False)  # Full summary dict as JSON
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<StatsCache(key={self.cache_key}, expires_at={self.expires_at})>"
