"""
Merge module - periodic concatenation of completed sessions.
"""

from .job import MergeJob, MergeOutcome
from .scheduler import MergeScheduler

__all__ = ["MergeJob", "MergeOutcome", "MergeScheduler"]
