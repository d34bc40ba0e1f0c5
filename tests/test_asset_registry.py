"""Video asset registry and its record store"""

import pytest

from filmroom.models.video_asset import ProcessingState, VariantQuality, VideoAsset
from filmroom.services.asset_registry import VideoAssetRegistry
from filmroom.services.record_store import RecordStore
from filmroom.utils.exceptions import AssetNotFoundError, InvalidTransitionError


async def new_asset(registry, game_id="game-1", owner_id="coach-1"):
    return await registry.create(owner_id, game_id, f"mem://{game_id}.mp4", file_name="game.mp4")


@pytest.mark.asyncio
async def test_create_starts_pending_and_round_trips(registry):
    asset = await new_asset(registry)
    stored = await registry.get(asset.id)

    assert stored == asset
    assert stored.state == ProcessingState.PENDING
    assert stored.variants == {}
    assert stored.known_duration is None


@pytest.mark.asyncio
async def test_get_unknown_asset_raises_not_found(registry):
    with pytest.raises(AssetNotFoundError) as excinfo:
        await registry.get("missing")
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_update_merges_fields_but_refuses_state_and_identity(registry):
    asset = await new_asset(registry)
    updated = await registry.update(asset.id, job_id="job-9")
    assert updated.job_id == "job-9"
    assert (await registry.get(asset.id)).job_id == "job-9"

    with pytest.raises(ValueError):
        await registry.update(asset.id, state=ProcessingState.COMPLETED)
    with pytest.raises(ValueError):
        await registry.update(asset.id, game_id="game-2")


@pytest.mark.asyncio
async def test_transition_to_completed_stores_artifacts(registry):
    asset = await new_asset(registry)
    completed, changed = await registry.transition(
        asset.id,
        ProcessingState.COMPLETED,
        variants={VariantQuality.P720: "mem://out_720p.mp4"},
        thumbnails=["mem://thumb.0.jpg"],
        duration_seconds=95.5,
    )

    assert changed is True
    assert completed.known_duration == 95.5
    stored = await registry.get(asset.id)
    assert stored.variants == {VariantQuality.P720: "mem://out_720p.mp4"}
    assert stored.updated_at >= asset.updated_at


@pytest.mark.asyncio
async def test_terminal_assets_never_move(registry):
    asset = await new_asset(registry)
    await registry.transition(asset.id, ProcessingState.FAILED, failure_reason="bad input")

    again, changed = await registry.transition(asset.id, ProcessingState.PROCESSING)
    assert changed is False
    assert again.state == ProcessingState.FAILED
    assert again.failure_reason == "bad input"


@pytest.mark.asyncio
async def test_per_asset_locks_are_dropped_once_terminal(registry):
    finished = await new_asset(registry, game_id="game-1")
    running = await new_asset(registry, game_id="game-2")

    await registry.transition(finished.id, ProcessingState.PROCESSING)
    await registry.transition(running.id, ProcessingState.PROCESSING)
    assert {finished.id, running.id} <= set(registry._locks)

    await registry.transition(finished.id, ProcessingState.COMPLETED, duration_seconds=60.0)
    assert finished.id not in registry._locks
    assert running.id in registry._locks

    await registry.update(finished.id, file_name="renamed.mp4")
    assert finished.id not in registry._locks


@pytest.mark.asyncio
async def test_backwards_transition_is_rejected(registry):
    asset = await new_asset(registry)
    await registry.transition(asset.id, ProcessingState.PROCESSING)
    with pytest.raises(InvalidTransitionError):
        await registry.transition(asset.id, ProcessingState.PENDING)


@pytest.mark.asyncio
async def test_compare_and_set_loss_keeps_the_winner(record_store):
    # Two registries stand in for two processes sharing one database
    first = VideoAssetRegistry(record_store)
    second = VideoAssetRegistry(record_store)
    asset = await new_asset(first)

    stale = await first.get(asset.id)
    await second.transition(asset.id, ProcessingState.FAILED, failure_reason="cancelled")

    moved = stale.model_copy(update={"state": ProcessingState.PROCESSING})
    assert await record_store.update_asset(moved, expected_state=ProcessingState.PENDING) is False
    assert (await first.get(asset.id)).state == ProcessingState.FAILED


@pytest.mark.asyncio
async def test_listing_by_game_owner_and_unfinished(registry):
    a1 = await new_asset(registry, game_id="game-1")
    a2 = await new_asset(registry, game_id="game-1")
    a3 = await new_asset(registry, game_id="game-2", owner_id="coach-2")
    await registry.transition(a1.id, ProcessingState.FAILED, failure_reason="boom")

    assert [a.id for a in await registry.list_by_game("game-1")] == [a2.id, a1.id]
    assert (await registry.latest_for_game("game-1")).id == a2.id
    assert await registry.latest_for_game("game-3") is None
    assert [a.id for a in await registry.list_by_owner("coach-2")] == [a3.id]
    assert {a.id for a in await registry.list_unfinished()} == {a2.id, a3.id}


@pytest.mark.asyncio
async def test_records_survive_a_new_store_instance(tmp_path):
    path = str(tmp_path / "records.db")
    asset = await new_asset(VideoAssetRegistry(RecordStore(path)))
    reopened = VideoAssetRegistry(RecordStore(path))
    assert (await reopened.get(asset.id)).raw_location == asset.raw_location


def test_model_rejects_artifacts_before_completion():
    with pytest.raises(ValueError):
        VideoAsset(
            owner_id="coach-1",
            game_id="game-1",
            raw_location="mem://x.mp4",
            thumbnails=["mem://t.jpg"],
        )
    with pytest.raises(ValueError):
        VideoAsset(
            owner_id="coach-1",
            game_id="game-1",
            raw_location="mem://x.mp4",
            failure_reason="nope",
        )
