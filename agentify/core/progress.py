"""
Progress Notifier - best-effort fan-out of compilation progress over SSE.

Contract: no buffering for late subscribers, no replay, no acknowledgement,
no backpressure. An event published while nobody listens is dropped; a
subscriber whose queue is full misses events. Clients recover true state
from GET /compile/status.

All publishers and subscribers live on the app's event loop, so the
subscriber set needs no lock.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from agentify.core.metrics import metrics
from agentify.schemas.compile import ProgressStatus

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100
HEARTBEAT_INTERVAL_S = 30.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ProgressEvent:
    """One progress signal for the UI."""
    step: str
    progress: int
    message: str
    status: ProgressStatus = ProgressStatus.IN_PROGRESS
    job_id: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "step": self.step,
            "progress": self.progress,
            "message": self.message,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }
        if self.job_id:
            data["jobId"] = self.job_id
        return data


def format_sse(payload: dict[str, Any]) -> str:
    """SSE frame: data: <json>\\n\\n"""
    return f"data: {json.dumps(payload, default=str)}\n\n"


class Subscription:
    """A subscriber's view of the event bus."""

    def __init__(self, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)

    async def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Next event, or None if `timeout` elapses first."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class ProgressNotifier:
    """One-way event bus: many publishers, zero or more subscribers."""

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self._queue_size = queue_size
        self._subscribers: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(
        self,
        step: str,
        progress: int,
        message: str,
        status: ProgressStatus = ProgressStatus.IN_PROGRESS,
        job_id: Optional[str] = None,
    ) -> int:
        """
        Forward an event to every current subscriber.

        Returns the number of subscribers that received it. Zero subscribers
        is a no-op, not an error.
        """
        event = ProgressEvent(
            step=step,
            progress=max(0, min(100, int(progress))),
            message=message,
            status=ProgressStatus(status),
            job_id=job_id,
        )
        metrics.inc("progress_events_total")
        logger.debug(f"progress step={step} progress={event.progress} status={event.status.value}")

        delivered = 0
        for subscription in list(self._subscribers):
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                metrics.inc("progress_events_dropped_total")
        return delivered

    def add_subscriber(self) -> Subscription:
        subscription = Subscription(self._queue_size)
        self._subscribers.add(subscription)
        return subscription

    def remove_subscriber(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[Subscription]:
        """Subscribe for the duration of the context."""
        subscription = self.add_subscriber()
        try:
            yield subscription
        finally:
            self.remove_subscriber(subscription)

    async def sse_stream(
        self,
        connection_data: Optional[dict[str, Any]] = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_S,
        max_events: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """
        Yield SSE frames: a `connection` event, then `compilation_update`
        events, with `heartbeat` events whenever the stream is idle for
        `heartbeat_interval` seconds.

        The subscription is taken when the first frame is requested and
        released when the generator finishes or is closed; a stream closed
        before it starts never holds one.
        `max_events` bounds the number of frames after the connection
        event (None = until the client disconnects).
        """
        sent = 0
        subscription = self.add_subscriber()
        try:
            yield format_sse({
                "type": "connection",
                "data": {"status": "connected", **(connection_data or {})},
                "timestamp": _now_iso(),
            })
            while max_events is None or sent < max_events:
                event = await subscription.get(timeout=heartbeat_interval)
                if event is None:
                    yield format_sse({"type": "heartbeat", "timestamp": _now_iso()})
                else:
                    yield format_sse({
                        "type": "compilation_update",
                        "data": event.to_dict(),
                        "timestamp": event.timestamp,
                    })
                sent += 1
        finally:
            self.remove_subscriber(subscription)


# Global notifier instance
progress_notifier = ProgressNotifier()
