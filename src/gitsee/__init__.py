"""
GitSee - GitHub repository exploration service.

Cheap REST lookups on the request path, AI-driven codebase exploration in
the background, results persisted per repository and pushed to stream
subscribers.
"""

__version__ = "0.1.0"
