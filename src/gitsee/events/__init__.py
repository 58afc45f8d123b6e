"""
Lifecycle event broadcasting and streaming.
"""

from .broadcaster import EventBroadcaster, EventType, LifecycleEvent
from .stream import event_stream, sse

__all__ = ["EventBroadcaster", "EventType", "LifecycleEvent", "event_stream", "sse"]
