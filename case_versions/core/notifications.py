"""
In-memory notification queue for version events.

New versions and version comments are handed to the notification collaborator
through this queue so the commit path never waits on delivery.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol
from datetime import datetime, timezone
from dataclasses import dataclass, field

from case_versions.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class VersionEvent:
    """Represents an event waiting to be delivered to stakeholders"""
    event_type: str
    entity_id: str
    version_number: int
    author_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0


class NotificationSink(Protocol):
    async def deliver(self, event: VersionEvent) -> None: ...


class LoggingSink:
    """Default sink: records the event in the service log"""

    async def deliver(self, event: VersionEvent) -> None:
        logger.info(
            f"🔔 {event.event_type} for {event.entity_id} v{event.version_number} by {event.author_id}"
        )


class RecordingSink:
    """Keeps delivered events in memory; useful for wiring checks and tests"""

    def __init__(self) -> None:
        self.events: List[VersionEvent] = []

    async def deliver(self, event: VersionEvent) -> None:
        self.events.append(event)


class NotificationQueue:
    """
    Fire-and-forget queue in front of the notification service.

    Events are queued without blocking; a background worker delivers them and
    re-queues failed deliveries up to `max_retries` times.
    """

    def __init__(self, sink: Optional[NotificationSink] = None, max_retries: int = 3):
        self.queue: asyncio.Queue[VersionEvent] = asyncio.Queue()
        self.sink: NotificationSink = sink or LoggingSink()
        self.max_retries = max_retries
        self.is_running = False
        self.worker_task: Optional[asyncio.Task] = None

        self.stats = {
            "events_queued": 0,
            "events_delivered": 0,
            "events_failed": 0,
            "queue_size": 0
        }

    async def start(self):
        """Start the background worker"""
        if not self.is_running:
            self.is_running = True
            self.worker_task = asyncio.create_task(self._worker())
            logger.info("🚀 Notification worker started")

    async def stop(self):
        """Stop the background worker and deliver remaining events"""
        if self.is_running:
            self.is_running = False
            if self.worker_task:
                await self.worker_task
                self.worker_task = None

            await self.drain()
            logger.info("🛑 Notification worker stopped")

    def publish(self, event: VersionEvent) -> None:
        """Queue an event. Never blocks and never raises into the caller."""
        self.queue.put_nowait(event)
        self.stats["events_queued"] += 1
        self.stats["queue_size"] = self.queue.qsize()
        logger.debug(f"📝 Queued {event.event_type} for {event.entity_id} v{event.version_number}")

    async def _worker(self):
        while self.is_running:
            try:
                try:
                    event = await asyncio.wait_for(self.queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                await self._deliver(event)
                self.queue.task_done()

            except Exception as e:
                logger.error(f"❌ Error in notification worker: {str(e)}")
                await asyncio.sleep(1)

    async def _deliver(self, event: VersionEvent):
        try:
            await self.sink.deliver(event)
            self.stats["events_delivered"] += 1
            self.stats["queue_size"] = self.queue.qsize()
        except Exception as e:
            logger.error(f"❌ Failed to deliver {event.event_type}: {str(e)}")

            if event.retry_count < self.max_retries:
                event.retry_count += 1
                self.queue.put_nowait(event)
                logger.info(f"🔄 Retrying notification (attempt {event.retry_count})")
            else:
                self.stats["events_failed"] += 1
                logger.error(f"💀 Notification dropped after {self.max_retries} retries")

    async def drain(self):
        """Deliver everything currently queued"""
        while not self.queue.empty():
            try:
                event = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._deliver(event)
            self.queue.task_done()

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "queue_size": self.queue.qsize(),
            "is_running": self.is_running
        }


# Global notification queue instance
notification_queue = NotificationQueue(max_retries=settings.notification_max_retries)
