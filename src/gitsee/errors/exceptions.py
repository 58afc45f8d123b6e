"""
Exception types raised by GitSee components.
"""

from typing import Optional


class GitSeeError(Exception):
    """Base class for GitSee errors"""


class ValidationError(GitSeeError):
    """Request failed validation (reported as HTTP 400)"""


class CloneError(GitSeeError):
    """Repository could not be cloned"""


class ExplorationError(GitSeeError):
    """Exploration loop terminated with an error"""


class StoreError(GitSeeError):
    """Result store could not persist a record"""


class SubscriberTimeoutError(GitSeeError):
    """No subscriber attached to a topic within the wait window"""

    def __init__(self, topic: str, timeout: float):
        self.topic = topic
        self.timeout = timeout
        super().__init__(f"No subscriber for {topic} within {timeout:.1f}s")


class GitHubAPIError(GitSeeError):
    """GitHub REST API returned an error"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class GitHubNotFoundError(GitHubAPIError):
    """Requested GitHub resource does not exist"""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)
