"""
Repository checkout management.
"""

from .clone_manager import (
    CloneManager,
    CloneTransport,
    GitCloneTransport,
    build_clone_url,
    display_clone_url,
)

__all__ = [
    "CloneManager",
    "CloneTransport",
    "GitCloneTransport",
    "build_clone_url",
    "display_clone_url",
]
