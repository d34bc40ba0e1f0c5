"""Processing status tracker and polling supervisor"""

import asyncio

import pytest

from filmroom.models.video_asset import ProcessingState, VariantQuality
from filmroom.services.status_tracker import (
    DEFAULT_FAILURE_REASON,
    TIMEOUT_REASON,
    PollingSupervisor,
    ProcessingStatusTracker,
)
from filmroom.utils.exceptions import TranscodeLookupError

from .conftest import FakeTranscoder, completed_result


async def new_asset(registry, game_id="game-1"):
    return await registry.create(
        owner_id="coach-1",
        game_id=game_id,
        raw_location=f"mem://protected/game-videos/{game_id}/{game_id}_1.mp4",
        file_name="game.mp4",
    )


@pytest.mark.asyncio
async def test_completed_job_commits_variants_and_refresh_returns_them(registry):
    transcoder = FakeTranscoder(statuses=[ProcessingState.COMPLETED], result=completed_result(5))
    tracker = ProcessingStatusTracker(registry, transcoder)
    asset = await new_asset(registry)

    assert await tracker.poll(asset.id) == ProcessingState.COMPLETED

    refreshed = await tracker.refresh(asset.id)
    assert refreshed.state == ProcessingState.COMPLETED
    assert set(refreshed.variants) == {VariantQuality.P1080, VariantQuality.P720}
    assert refreshed.variants == completed_result(5).variants
    assert refreshed.thumbnails == completed_result(5).thumbnails
    assert refreshed.duration_seconds == 600.0
    # Terminal assets are not looked up again
    assert transcoder.status_calls == 1


@pytest.mark.asyncio
async def test_progressing_job_moves_pending_asset_to_processing(registry):
    transcoder = FakeTranscoder(statuses=[ProcessingState.PENDING, ProcessingState.PROCESSING])
    tracker = ProcessingStatusTracker(registry, transcoder)
    asset = await new_asset(registry)

    assert await tracker.poll(asset.id) == ProcessingState.PENDING
    assert await tracker.poll(asset.id) == ProcessingState.PROCESSING
    assert (await registry.get(asset.id)).state == ProcessingState.PROCESSING


@pytest.mark.asyncio
async def test_failed_job_records_reported_reason(registry):
    transcoder = FakeTranscoder(statuses=[ProcessingState.FAILED], reason="unsupported codec")
    tracker = ProcessingStatusTracker(registry, transcoder)
    asset = await new_asset(registry)

    assert await tracker.poll(asset.id) == ProcessingState.FAILED
    stored = await registry.get(asset.id)
    assert stored.failure_reason == "unsupported codec"
    assert stored.variants == {}


@pytest.mark.asyncio
async def test_failed_job_without_reason_gets_default(registry):
    tracker = ProcessingStatusTracker(registry, FakeTranscoder(statuses=[ProcessingState.FAILED]))
    asset = await new_asset(registry)
    await tracker.poll(asset.id)
    assert (await registry.get(asset.id)).failure_reason == DEFAULT_FAILURE_REASON


@pytest.mark.asyncio
async def test_lookup_error_leaves_state_untouched(registry):
    transcoder = FakeTranscoder(statuses=[
        TranscodeLookupError("a", "throttled"),
        ProcessingState.PROCESSING,
    ])
    tracker = ProcessingStatusTracker(registry, transcoder)
    asset = await new_asset(registry)

    assert await tracker.poll(asset.id) == ProcessingState.PENDING
    assert (await registry.get(asset.id)).updated_at == asset.updated_at
    assert await tracker.poll(asset.id) == ProcessingState.PROCESSING


@pytest.mark.asyncio
async def test_refresh_while_running_returns_stored_record_without_writing(registry):
    transcoder = FakeTranscoder(statuses=[ProcessingState.PROCESSING])
    tracker = ProcessingStatusTracker(registry, transcoder)
    asset = await new_asset(registry)

    refreshed = await tracker.refresh(asset.id)
    assert refreshed.state == ProcessingState.PENDING
    assert (await registry.get(asset.id)).updated_at == asset.updated_at


@pytest.mark.asyncio
async def test_transition_listener_sees_each_committed_change_once(registry):
    seen = []

    async def listener(asset):
        seen.append(asset.state)

    transcoder = FakeTranscoder(statuses=[
        ProcessingState.PROCESSING,
        ProcessingState.PROCESSING,
        ProcessingState.COMPLETED,
    ])
    tracker = ProcessingStatusTracker(registry, transcoder, on_transition=listener)
    asset = await new_asset(registry)

    for _ in range(4):
        await tracker.poll(asset.id)
    assert seen == [ProcessingState.PROCESSING, ProcessingState.COMPLETED]


@pytest.mark.asyncio
async def test_concurrent_poll_and_refresh_commit_completion_once(registry):
    seen = []
    transcoder = FakeTranscoder(statuses=[ProcessingState.COMPLETED])
    tracker = ProcessingStatusTracker(registry, transcoder, on_transition=seen.append)
    asset = await new_asset(registry)

    state, refreshed = await asyncio.gather(tracker.poll(asset.id), tracker.refresh(asset.id))

    assert state == ProcessingState.COMPLETED
    assert refreshed.state == ProcessingState.COMPLETED
    assert len(seen) == 1
    assert (await registry.get(asset.id)).thumbnails == completed_result().thumbnails


@pytest.mark.asyncio
async def test_supervisor_stops_polling_after_terminal_state(registry, clock):
    transcoder = FakeTranscoder(statuses=[
        ProcessingState.PENDING,
        ProcessingState.PROCESSING,
        ProcessingState.COMPLETED,
    ])
    tracker = ProcessingStatusTracker(registry, transcoder)
    supervisor = PollingSupervisor(tracker, interval=10, max_duration=1800, clock=clock, sleep=clock.sleep)
    asset = await new_asset(registry)

    supervisor.start(asset.id)
    assert await supervisor.wait(asset.id) == ProcessingState.COMPLETED

    assert transcoder.status_calls == 3
    assert clock.sleeps == [10, 10]
    assert not supervisor.is_polling(asset.id)
    assert (await registry.get(asset.id)).state == ProcessingState.COMPLETED


@pytest.mark.asyncio
async def test_supervisor_fails_asset_after_processing_timeout(registry, clock):
    transcoder = FakeTranscoder(statuses=[ProcessingState.PROCESSING])
    tracker = ProcessingStatusTracker(registry, transcoder)
    supervisor = PollingSupervisor(tracker, interval=10, max_duration=1800, clock=clock, sleep=clock.sleep)
    asset = await new_asset(registry)

    supervisor.start(asset.id)
    assert await supervisor.wait(asset.id) == ProcessingState.FAILED

    stored = await registry.get(asset.id)
    assert stored.state == ProcessingState.FAILED
    assert stored.failure_reason == TIMEOUT_REASON
    assert clock.now >= 1800
    assert transcoder.status_calls == 181


@pytest.mark.asyncio
async def test_supervisor_keeps_polling_after_unexpected_error(registry, clock):
    transcoder = FakeTranscoder(statuses=[RuntimeError("database is locked"), ProcessingState.COMPLETED])
    tracker = ProcessingStatusTracker(registry, transcoder)
    supervisor = PollingSupervisor(tracker, interval=10, max_duration=1800, clock=clock, sleep=clock.sleep)
    asset = await new_asset(registry)

    supervisor.start(asset.id)
    assert await supervisor.wait(asset.id) == ProcessingState.COMPLETED
    assert transcoder.status_calls == 2
    assert (await registry.get(asset.id)).state == ProcessingState.COMPLETED


@pytest.mark.asyncio
async def test_supervisor_still_times_out_when_every_poll_errors(registry, clock):
    transcoder = FakeTranscoder(statuses=[RuntimeError("connection refused")])
    tracker = ProcessingStatusTracker(registry, transcoder)
    supervisor = PollingSupervisor(tracker, interval=10, max_duration=1800, clock=clock, sleep=clock.sleep)
    asset = await new_asset(registry)

    supervisor.start(asset.id)
    assert await supervisor.wait(asset.id) == ProcessingState.FAILED
    assert (await registry.get(asset.id)).failure_reason == TIMEOUT_REASON


@pytest.mark.asyncio
async def test_supervisor_start_is_idempotent_and_stop_cancels(registry):
    tracker = ProcessingStatusTracker(registry, FakeTranscoder(statuses=[ProcessingState.PROCESSING]))
    supervisor = PollingSupervisor(tracker, interval=3600)
    asset = await new_asset(registry)
    await tracker.poll(asset.id)

    first = supervisor.start(asset.id)
    assert supervisor.start(asset.id) is first
    assert supervisor.active() == [asset.id]

    assert await supervisor.stop(asset.id) is True
    assert await supervisor.stop(asset.id) is False
    assert first.cancelled()
    # Stopping never rolls back what was already committed
    assert (await registry.get(asset.id)).state == ProcessingState.PROCESSING


@pytest.mark.asyncio
async def test_supervisor_exits_quietly_when_asset_is_missing(registry, clock):
    tracker = ProcessingStatusTracker(registry, FakeTranscoder())
    supervisor = PollingSupervisor(tracker, clock=clock, sleep=clock.sleep)
    supervisor.start("does-not-exist")
    assert await supervisor.wait("does-not-exist") is None
