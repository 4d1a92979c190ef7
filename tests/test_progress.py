"""
Tests for the Progress Notifier (best-effort SSE fan-out).
"""
import asyncio
import json

import pytest

from agentify.core.metrics import metrics
from agentify.core.progress import ProgressNotifier, format_sse
from agentify.schemas.compile import ProgressStatus


def parse_frame(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


class TestPublish:
    """Tests for publish()."""

    def test_zero_subscribers_is_noop(self, notifier):
        assert notifier.publish("compilation", 50, "Starting local compilation...") == 0

    @pytest.mark.asyncio
    async def test_fan_out_to_every_subscriber(self, notifier):
        async with notifier.subscribe() as first, notifier.subscribe() as second:
            delivered = notifier.publish("configuration", 30, "Processing agent configuration...")
            assert delivered == 2
            a = await first.get(timeout=1)
            b = await second.get(timeout=1)
            assert a == b
            assert a.step == "configuration"
            assert a.progress == 30
            assert a.status == ProgressStatus.IN_PROGRESS

        assert notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_no_replay(self, notifier):
        notifier.publish("initialization", 10, "Initializing compiler service...")
        async with notifier.subscribe() as subscription:
            assert await subscription.get(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, notifier):
        async with notifier.subscribe() as subscription:
            notifier.publish("x", 150, "over")
            notifier.publish("x", -5, "under")
            assert (await subscription.get(timeout=1)).progress == 100
            assert (await subscription.get(timeout=1)).progress == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        notifier = ProgressNotifier(queue_size=1)
        before = metrics.get("progress_events_dropped_total")
        async with notifier.subscribe():
            assert notifier.publish("a", 1, "first") == 1
            assert notifier.publish("a", 2, "second") == 0
        assert metrics.get("progress_events_dropped_total") == before + 1

    def test_event_dict_includes_job_id(self, notifier):
        subscription = notifier.add_subscriber()
        notifier.publish("compilation", 80, "started", status="in_progress", job_id="compile-1-abc")
        event = subscription.queue.get_nowait()
        data = event.to_dict()
        assert data["jobId"] == "compile-1-abc"
        assert data["status"] == "in_progress"
        notifier.remove_subscriber(subscription)


class TestSseStream:
    """Tests for sse_stream() framing."""

    def test_format_sse(self):
        assert format_sse({"type": "heartbeat"}) == 'data: {"type": "heartbeat"}\n\n'

    @pytest.mark.asyncio
    async def test_connection_then_updates(self, notifier):
        stream = notifier.sse_stream(connection_data={"userId": "u1"}, max_events=1)

        connection = parse_frame(await stream.__anext__())
        assert connection["type"] == "connection"
        assert connection["data"] == {"status": "connected", "userId": "u1"}

        notifier.publish("compilation", 90, "Local compilation completed successfully", status=ProgressStatus.COMPLETED)
        update = parse_frame(await stream.__anext__())
        assert update["type"] == "compilation_update"
        assert update["data"]["progress"] == 90
        assert update["data"]["status"] == "completed"

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_heartbeat_when_idle(self, notifier):
        frames = [
            parse_frame(frame)
            async for frame in notifier.sse_stream(heartbeat_interval=0.01, max_events=2)
        ]
        assert [f["type"] for f in frames] == ["connection", "heartbeat", "heartbeat"]

    @pytest.mark.asyncio
    async def test_closing_stream_unsubscribes(self, notifier):
        stream = notifier.sse_stream(heartbeat_interval=10)
        await stream.__anext__()
        assert notifier.subscriber_count == 1
        await stream.aclose()
        assert notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unstarted_stream_holds_no_subscription(self, notifier):
        """A client that disconnects before the first frame leaves nothing behind."""
        stream = notifier.sse_stream(heartbeat_interval=10)
        assert notifier.subscriber_count == 0
        await stream.aclose()
        assert notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_publish_from_other_task(self, notifier):
        stream = notifier.sse_stream(heartbeat_interval=5, max_events=1)
        await stream.__anext__()

        async def publisher():
            await asyncio.sleep(0.01)
            notifier.publish("compilation", 70, "Triggering GitHub Actions compilation...")

        task = asyncio.create_task(publisher())
        update = parse_frame(await stream.__anext__())
        await task
        assert update["data"]["message"] == "Triggering GitHub Actions compilation..."
        await stream.aclose()
