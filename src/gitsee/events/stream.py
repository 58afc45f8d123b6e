"""
Server-sent event framing for repository topics.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from .broadcaster import EventBroadcaster, LifecycleEvent
from ..models import RepositoryKey, now_ms

logger = logging.getLogger(__name__)


def sse(payload: Dict[str, Any]) -> str:
    """Frame one JSON payload as a text/event-stream message."""
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


async def event_stream(
    broadcaster: EventBroadcaster,
    key: RepositoryKey,
    heartbeat_seconds: float = 30.0,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for a repository topic until the client goes away.

    The first frame is a "connected" message, followed by lifecycle events
    as they are published and a "heartbeat" frame whenever the topic is quiet
    for heartbeat_seconds.
    """
    queue: "asyncio.Queue[LifecycleEvent]" = asyncio.Queue()
    unsubscribe = broadcaster.subscribe(key, queue.put_nowait)
    logger.info(f"SSE connection established for {key}")

    try:
        yield sse({"type": "connected", "owner": key.owner, "repo": key.name, "timestamp": now_ms()})

        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                if is_disconnected is not None and await is_disconnected():
                    break
                yield sse({"type": "heartbeat", "timestamp": now_ms()})
                continue
            yield sse(event.to_dict())
    finally:
        unsubscribe()
        logger.info(f"SSE connection closed for {key}")
