"""Tests for inzikt.core.progress."""

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis

from inzikt.core.errors import JobNotFoundError, JobOwnershipError
from inzikt.core.progress import (
    ProgressPublisher,
    ProgressSnapshot,
    ProgressSource,
    RedisSubscription,
    derive_stage,
    job_channel,
    snapshot_from_job,
    user_channel,
)
from inzikt.models.job import BackgroundJobStatus, BackgroundJobType


class FakeChannel:
    """In-memory subscription: records the channel and replays queued payloads.

    A ``None`` entry, like an exhausted queue, stands for a receive timeout.
    """

    def __init__(self, payloads=()):
        self.payloads = list(payloads)
        self.channels: list[str] = []
        self.timeouts: list[float] = []
        self.closed = False

    async def receive(self, timeout):
        self.timeouts.append(timeout)
        return self.payloads.pop(0) if self.payloads else None

    @asynccontextmanager
    async def __call__(self, channel):
        self.channels.append(channel)
        try:
            yield self
        finally:
            self.closed = True


class TestDeriveStage:
    @pytest.mark.parametrize(
        ("progress", "stage"),
        [(0, "scanning"), (24, "scanning"), (25, "processing"), (74, "processing"), (75, "importing")],
    )
    def test_by_progress(self, progress, stage):
        assert derive_stage("processing", progress) == stage

    def test_terminal_status_wins(self):
        assert derive_stage("failed", 10, stage="processing") == "failed"
        assert derive_stage("completed", 100) == "completed"

    def test_explicit_stage(self):
        assert derive_stage("processing", 90, stage="analyzing") == "analyzing"


class TestSnapshotFromJob:
    def test_normalizes_defaults(self, store):
        job = store.add_background(user_id="u1", provider=None)
        snap = snapshot_from_job(job)
        assert snap.provider == "unknown"
        assert snap.status == "pending"
        assert snap.stage == "scanning"
        assert snap.percentage == 0
        assert snap.is_completed is False
        assert "currentTicket" not in snap.to_payload()

    def test_percentage_from_counts(self, store):
        job = store.add_background(
            user_id="u1",
            provider="zendesk",
            status=BackgroundJobStatus.PROCESSING,
            progress=40,
            total_tickets=8,
            processed_count=2,
            current_ticket={"id": 17, "position": 2},
        )
        payload = snapshot_from_job(job).to_payload()
        assert payload == {
            "jobId": job.id,
            "provider": "zendesk",
            "status": "processing",
            "stage": "processing",
            "totalTickets": 8,
            "processedCount": 2,
            "percentage": 25,
            "progress": 40,
            "isCompleted": False,
            "currentTicket": {"id": "17", "position": 2},
        }

    def test_progress_clamped(self, store):
        job = store.add_background(user_id="u1", progress=140)
        assert snapshot_from_job(job).progress == 100

    def test_completed_flag_or_status(self, store):
        flagged = store.add_background(user_id="u1", is_completed=True, progress=10)
        done = store.add_background(user_id="u2", status=BackgroundJobStatus.COMPLETED, progress=50)
        assert snapshot_from_job(flagged).is_completed
        assert snapshot_from_job(done).is_completed

    def test_terminal_statuses(self, store):
        for status in (BackgroundJobStatus.FAILED, BackgroundJobStatus.CANCELED):
            job = store.add_background(user_id="u1", status=status, progress=30)
            snap = snapshot_from_job(job)
            assert snap.is_terminal
            assert snap.stage == str(status)


class TestPublisher:
    def test_publishes_to_job_and_user_channels(self, store):
        client = MagicMock()
        job = store.add_background(user_id="u1", job_type=BackgroundJobType.IMPORT)

        snapshot = ProgressPublisher(lambda: client).publish(job)

        channels = [call.args[0] for call in client.publish.call_args_list]
        assert channels == [job_channel(job.id), user_channel("u1", "import")]
        assert json.loads(client.publish.call_args.args[1]) == snapshot.to_payload()

    def test_redis_failure_is_swallowed(self, store):
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError("down")
        job = store.add_background(user_id="u1")

        snapshot = ProgressPublisher(lambda: client).publish(job)

        assert snapshot.job_id == job.id


class TestProgressSource:
    async def test_poll_and_push_shapes_match(self, store):
        """Polling and the stream must serialize the same job identically."""
        job = store.add_background(
            user_id="u1",
            provider="freshdesk",
            status=BackgroundJobStatus.PROCESSING,
            progress=55,
            total_tickets=20,
            processed_count=11,
            current_ticket={"id": "t-11", "position": 11},
        )
        published = ProgressPublisher(lambda: MagicMock()).publish(job).to_payload()
        # Round-trip through JSON as the Redis channel does
        source = ProgressSource(
            store, subscribe=FakeChannel([json.loads(json.dumps(published))]), idle_timeout=15
        )

        polled = (await source.snapshot_for_job(job.id, "u1")).to_payload()
        streamed = [s.to_payload() async for s in source.stream("u1", job_id=job.id)]

        assert streamed[0] == polled
        assert streamed[1] == polled
        assert set(polled) == set(streamed[1])

    async def test_snapshot_for_job_checks_owner(self, store):
        job = store.add_background(user_id="u1")
        source = ProgressSource(store, subscribe=FakeChannel())
        with pytest.raises(JobOwnershipError):
            await source.snapshot_for_job(job.id, "u2")
        with pytest.raises(JobNotFoundError):
            await source.snapshot_for_job("missing", "u1")

    async def test_snapshot_for_user_prefers_active(self, store):
        store.add_background(user_id="u1", status=BackgroundJobStatus.COMPLETED, progress=100)
        active = store.add_background(user_id="u1", status=BackgroundJobStatus.PROCESSING)
        store.add_background(user_id="u1", status=BackgroundJobStatus.FAILED)
        source = ProgressSource(store, subscribe=FakeChannel())

        snap = await source.snapshot_for_user("u1", BackgroundJobType.ANALYSIS)

        assert snap.job_id == active.id

    async def test_snapshot_for_user_falls_back_to_latest(self, store):
        store.add_background(user_id="u1", status=BackgroundJobStatus.COMPLETED, progress=100)
        latest = store.add_background(user_id="u1", status=BackgroundJobStatus.FAILED)
        source = ProgressSource(store, subscribe=FakeChannel())

        snap = await source.snapshot_for_user("u1", BackgroundJobType.ANALYSIS)

        assert snap.job_id == latest.id
        assert snap.status == "failed"

    async def test_snapshot_for_user_without_jobs(self, store):
        source = ProgressSource(store, subscribe=FakeChannel())
        with pytest.raises(JobNotFoundError):
            await source.snapshot_for_user("u1", BackgroundJobType.ANALYSIS)

    async def test_stream_ends_on_terminal_snapshot(self, store):
        job = store.add_background(user_id="u1", status=BackgroundJobStatus.PROCESSING, progress=10)
        base = snapshot_from_job(job).to_payload()
        channel = FakeChannel(
            [
                {**base, "progress": 50, "stage": "processing"},
                {**base, "status": "completed", "stage": "completed", "progress": 100, "isCompleted": True},
                {**base, "progress": 60},
            ]
        )
        source = ProgressSource(store, subscribe=channel)

        snapshots = [s async for s in source.stream("u1", job_id=job.id)]

        assert [s.progress for s in snapshots] == [10, 50, 100]
        assert snapshots[-1].is_completed
        assert channel.channels == [job_channel(job.id)]
        assert channel.closed

    async def test_stream_of_finished_job_yields_once(self, store):
        job = store.add_background(user_id="u1", status=BackgroundJobStatus.CANCELED)
        channel = FakeChannel([{"jobId": job.id, "status": "processing", "stage": "scanning"}])
        source = ProgressSource(store, subscribe=channel)

        snapshots = [s async for s in source.stream("u1", job_id=job.id)]

        assert len(snapshots) == 1
        assert snapshots[0].status == "canceled"

    async def test_stream_by_user_waits_for_first_job(self, store):
        channel = FakeChannel([{"jobId": "j9", "status": "completed", "stage": "completed", "progress": 100}])
        source = ProgressSource(store, subscribe=channel)

        snapshots = [s async for s in source.stream("u1", job_type="analysis")]

        assert [s.job_id for s in snapshots] == ["j9"]
        assert channel.channels == [user_channel("u1", "analysis")]

    async def test_stream_for_job_that_never_starts_gives_up(self, store):
        channel = FakeChannel()
        source = ProgressSource(store, subscribe=channel, keepalive=15, idle_timeout=45)

        items = [s async for s in source.stream("u1", job_type="import")]

        assert items == [None, None]
        assert channel.timeouts == [15, 15, 15]
        assert channel.closed

    async def test_updates_reset_the_idle_clock(self, store):
        job = store.add_background(user_id="u1", status=BackgroundJobStatus.PROCESSING, progress=10)
        update = {**snapshot_from_job(job).to_payload(), "progress": 40}
        channel = FakeChannel([None, update, None, None])
        source = ProgressSource(store, subscribe=channel, keepalive=15, idle_timeout=30)

        items = [s async for s in source.stream("u1", job_id=job.id)]

        assert [None if s is None else s.progress for s in items] == [10, None, 40, None]

    async def test_stream_requires_a_key(self, store):
        source = ProgressSource(store, subscribe=FakeChannel())
        with pytest.raises(ValueError):
            async for _ in source.stream("u1"):
                pass


def test_snapshot_accepts_camel_and_snake():
    camel = ProgressSnapshot.model_validate({"jobId": "j", "status": "pending", "stage": "scanning"})
    snake = ProgressSnapshot(job_id="j", status="pending", stage="scanning")
    assert camel == snake


class TestRedisSubscription:
    async def test_decodes_messages_and_skips_malformed(self):
        pubsub = MagicMock()
        pubsub.get_message = AsyncMock(
            side_effect=[
                {"type": "message", "channel": "c", "data": "not json"},
                {"type": "message", "channel": "c", "data": json.dumps({"jobId": "j1"})},
            ]
        )

        payload = await RedisSubscription(pubsub).receive(5)

        assert payload == {"jobId": "j1"}
        assert pubsub.get_message.await_count == 2
        assert pubsub.get_message.call_args.kwargs["ignore_subscribe_messages"] is True

    async def test_returns_none_after_timeout(self):
        pubsub = MagicMock()
        pubsub.get_message = AsyncMock(return_value=None)

        assert await RedisSubscription(pubsub).receive(0) is None
