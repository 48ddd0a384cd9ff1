"""
Live issue notifications for per-project subscribers.

Publishing never awaits: each subscriber owns a bounded queue and the
oldest message is dropped when it is full. A slow consumer therefore only
loses its own messages.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set
from uuid import uuid4

from crashtrack.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    ISSUE_NEW = "issue.new"
    ISSUE_REGRESSED = "issue.regressed"
    ISSUE_RESOLVED = "issue.resolved"
    ISSUE_ASSIGNED = "issue.assigned"
    HEARTBEAT = "heartbeat"


@dataclass
class Notification:
    """One message delivered to subscribers."""

    type: NotificationType
    project_id: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "project_id": self.project_id,
            "timestamp": self.timestamp,
            **self.payload,
        }


class Subscription:
    """A single live consumer with its own bounded buffer."""

    def __init__(self, project_id: str, buffer_size: int):
        self.id = str(uuid4())
        self.project_id = project_id
        self.queue: "asyncio.Queue[Optional[Notification]]" = asyncio.Queue(maxsize=buffer_size)
        self.dropped = 0
        self.closed = False

    def offer(self, notification: Optional[Notification]) -> None:
        """Enqueue without waiting, discarding the oldest message when full."""
        if self.closed and notification is not None:
            return
        while True:
            try:
                self.queue.put_nowait(notification)
                return
            except asyncio.QueueFull:
                try:
                    self.queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            # Wakes up a consumer blocked in get()
            self.offer(None)

    async def get(self, timeout: Optional[float] = None) -> Optional[Notification]:
        """
        Wait for the next notification.

        Returns:
            The notification, or None once the subscription is closed
        """
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Notification:
        notification = await self.get()
        if notification is None:
            raise StopAsyncIteration
        return notification


class SubscriberRegistry:
    """Project id to live subscriptions. Owned by one notifier instance."""

    def __init__(self):
        self._subscribers: Dict[str, Set[Subscription]] = {}

    def add(self, subscription: Subscription) -> None:
        self._subscribers.setdefault(subscription.project_id, set()).add(subscription)

    def remove(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.project_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.project_id]

    def for_project(self, project_id: str) -> Set[Subscription]:
        return set(self._subscribers.get(project_id, ()))

    def all(self) -> Set[Subscription]:
        return {s for subscribers in self._subscribers.values() for s in subscribers}

    def count(self, project_id: Optional[str] = None) -> int:
        if project_id is not None:
            return len(self._subscribers.get(project_id, ()))
        return sum(len(s) for s in self._subscribers.values())


class ChangeNotifier:
    """Fan-out of issue lifecycle notifications plus periodic heartbeats."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        buffer_size: int = 100,
        heartbeat_interval: float = 30.0,
    ):
        self.registry = registry
        self.buffer_size = buffer_size
        self.heartbeat_interval = heartbeat_interval
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._stats = {"published": 0, "delivered": 0, "heartbeats": 0}

    def subscribe(self, project_id: str) -> Subscription:
        subscription = Subscription(project_id, self.buffer_size)
        self.registry.add(subscription)
        logger.info(
            f"Subscriber {subscription.id[:8]} joined project {project_id[:8]} "
            f"({self.registry.count(project_id)} live)"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self.registry.remove(subscription)
        subscription.close()
        if subscription.dropped:
            logger.warning(
                f"Subscriber {subscription.id[:8]} left after dropping {subscription.dropped} messages"
            )

    def publish(
        self,
        project_id: str,
        notification_type: NotificationType,
        payload: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Deliver a notification to every subscriber of a project.

        Returns:
            Number of subscribers the message was queued for
        """
        notification = Notification(notification_type, project_id, payload or {})
        subscribers = self.registry.for_project(project_id)
        for subscription in subscribers:
            subscription.offer(notification)
        self._stats["published"] += 1
        self._stats["delivered"] += len(subscribers)
        logger.debug(f"Published {notification_type.value} to {len(subscribers)} subscribers")
        return len(subscribers)

    def broadcast_heartbeat(self) -> int:
        subscribers = self.registry.all()
        for subscription in subscribers:
            subscription.offer(Notification(NotificationType.HEARTBEAT, subscription.project_id))
        self._stats["heartbeats"] += 1
        return len(subscribers)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            self.broadcast_heartbeat()

    async def start(self) -> None:
        """Start the heartbeat task."""
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
            logger.info(f"Change notifier started (heartbeat every {self.heartbeat_interval}s)")

    async def stop(self) -> None:
        """Stop the heartbeat task and close every subscription."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for subscription in self.registry.all():
            self.unsubscribe(subscription)
        logger.info("Change notifier stopped")

    def get_stats(self) -> Dict[str, Any]:
        return {**self._stats, "subscribers": self.registry.count()}
