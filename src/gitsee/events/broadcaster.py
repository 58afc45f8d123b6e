"""
In-process publish/subscribe hub for repository lifecycle events.

One topic per RepositoryKey. Delivery is synchronous to whoever is subscribed
at publish time; with no subscribers the event is dropped. Nothing is queued
or replayed.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..errors import SubscriberTimeoutError
from ..models import CloneOutcome, ExplorationMode, RepositoryKey, now_ms

logger = logging.getLogger(__name__)


class EventType(Enum):
    CLONE_STARTED = "clone_started"
    CLONE_COMPLETED = "clone_completed"
    EXPLORATION_STARTED = "exploration_started"
    EXPLORATION_PROGRESS = "exploration_progress"
    EXPLORATION_COMPLETED = "exploration_completed"
    EXPLORATION_FAILED = "exploration_failed"


@dataclass(frozen=True)
class LifecycleEvent:
    """A transient event on a repository topic."""
    type: EventType
    owner: str
    repo: str
    timestamp_ms: int
    mode: Optional[ExplorationMode] = None
    data: Any = None
    error: Optional[str] = None

    @property
    def key(self) -> RepositoryKey:
        return RepositoryKey(self.owner, self.repo)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type.value,
            "owner": self.owner,
            "repo": self.repo,
        }
        if self.mode is not None:
            payload["mode"] = self.mode.value
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        payload["timestamp"] = self.timestamp_ms
        return payload


Observer = Callable[[LifecycleEvent], None]


class EventBroadcaster:
    """
    Per-repository topics with synchronous observers.

    Observers must not block; an observer that raises is logged and the
    remaining observers still receive the event.
    """

    def __init__(self):
        self._subscribers: Dict[RepositoryKey, List[Observer]] = {}
        self._waiters: Dict[RepositoryKey, List[asyncio.Future]] = {}
        self._last_timestamp: Dict[RepositoryKey, int] = {}

    def subscribe(self, key: RepositoryKey, observer: Observer) -> Callable[[], None]:
        """
        Register an observer for a topic and signal waiting producers.

        Returns:
            Function that removes the observer (safe to call twice)
        """
        observers = self._subscribers.setdefault(key, [])
        observers.append(observer)
        logger.info(f"New subscriber for {key} (total: {len(observers)})")

        for waiter in self._waiters.pop(key, []):
            if not waiter.done():
                waiter.set_result(None)

        def unsubscribe():
            current = self._subscribers.get(key)
            if current is None or observer not in current:
                return
            current.remove(observer)
            if not current:
                del self._subscribers[key]
            logger.info(f"Unsubscribed from {key} (remaining: {len(current)})")

        return unsubscribe

    def publish(self, event: LifecycleEvent) -> int:
        """
        Deliver an event to current subscribers of its topic.

        Returns:
            Number of observers the event was delivered to
        """
        observers = list(self._subscribers.get(event.key, ()))
        if not observers:
            logger.debug(f"Dropped {event.type.value} for {event.key}: no subscribers")
            return 0

        delivered = 0
        for observer in observers:
            try:
                observer(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Observer for {event.key} failed on {event.type.value}: {e}")
        return delivered

    async def wait_for_first_subscriber(self, key: RepositoryKey, timeout: float) -> None:
        """
        Wait until the topic has at least one subscriber.

        Returns immediately if one is already present.

        Raises:
            SubscriberTimeoutError: If nobody subscribes within timeout seconds
        """
        if self.subscriber_count(key) > 0:
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(key, []).append(waiter)
        try:
            await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            raise SubscriberTimeoutError(str(key), timeout) from None
        finally:
            waiters = self._waiters.get(key)
            if waiters and waiter in waiters:
                waiters.remove(waiter)
                if not waiters:
                    del self._waiters[key]

    def subscriber_count(self, key: RepositoryKey) -> int:
        return len(self._subscribers.get(key, ()))

    def clear_topic(self, key: RepositoryKey) -> None:
        """Remove all observers of a topic."""
        removed = len(self._subscribers.pop(key, []))
        self._last_timestamp.pop(key, None)
        logger.info(f"Cleared {removed} subscriber(s) for {key}")

    # Event construction

    def _stamp(self, key: RepositoryKey) -> int:
        timestamp = max(now_ms(), self._last_timestamp.get(key, 0))
        self._last_timestamp[key] = timestamp
        return timestamp

    def emit(
        self,
        event_type: EventType,
        key: RepositoryKey,
        mode: Optional[ExplorationMode] = None,
        data: Any = None,
        error: Optional[str] = None,
    ) -> LifecycleEvent:
        """Build, timestamp and publish an event."""
        event = LifecycleEvent(
            type=event_type,
            owner=key.owner,
            repo=key.name,
            timestamp_ms=self._stamp(key),
            mode=mode,
            data=data,
            error=error,
        )
        delivered = self.publish(event)
        logger.info(
            f"Emitted {event_type.value} for {key}"
            + (f" ({mode.value})" if mode else "")
            + f" to {delivered} subscriber(s)"
        )
        return event

    def clone_started(self, key: RepositoryKey) -> LifecycleEvent:
        return self.emit(EventType.CLONE_STARTED, key)

    def clone_completed(self, key: RepositoryKey, outcome: CloneOutcome) -> LifecycleEvent:
        return self.emit(
            EventType.CLONE_COMPLETED,
            key,
            data={"success": outcome.success, "localPath": outcome.local_path},
            error=outcome.error,
        )

    def exploration_started(self, key: RepositoryKey, mode: ExplorationMode) -> LifecycleEvent:
        return self.emit(EventType.EXPLORATION_STARTED, key, mode=mode)

    def exploration_progress(self, key: RepositoryKey, mode: ExplorationMode, progress: str) -> LifecycleEvent:
        return self.emit(EventType.EXPLORATION_PROGRESS, key, mode=mode, data={"progress": progress})

    def exploration_completed(self, key: RepositoryKey, mode: ExplorationMode, result: Any) -> LifecycleEvent:
        return self.emit(EventType.EXPLORATION_COMPLETED, key, mode=mode, data={"result": result})

    def exploration_failed(self, key: RepositoryKey, mode: ExplorationMode, error: str) -> LifecycleEvent:
        return self.emit(EventType.EXPLORATION_FAILED, key, mode=mode, error=error)
