"""
Utility modules for GitSee.
"""

from .retry import retry_with_backoff
from .cache import MemoryCache
from .tasks import TaskSupervisor

__all__ = ["retry_with_backoff", "MemoryCache", "TaskSupervisor"]
