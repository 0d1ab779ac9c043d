from .applied_job import AppliedJob
from .ats_score import AtsScore
from .stats_cache import StatsCache
from .user import User

__all__ = ["AppliedJob", "AtsScore", "StatsCache", "User"]
