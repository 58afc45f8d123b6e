"""
GitHub REST integration for GitSee.
"""

from .client import GitHubClient, GitHubConfig
from .resources import RepositoryResources, KEY_FILE_CANDIDATES, format_commits, icon_resolution

__all__ = [
    "GitHubClient",
    "GitHubConfig",
    "RepositoryResources",
    "KEY_FILE_CANDIDATES",
    "format_commits",
    "icon_resolution",
]
