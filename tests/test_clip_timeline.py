"""Clip timeline validation, CRUD and queries"""

import pytest

from filmroom.models.clip import ClipCreate, ClipFilter, ClipUpdate, Priority, Visibility
from filmroom.models.video_asset import ProcessingState
from filmroom.services.clip_timeline import ClipTimeline
from filmroom.utils.exceptions import AssetNotFoundError, ClipNotFoundError, ValidationError


@pytest.fixture
def timeline(record_store, registry):
    return ClipTimeline(record_store, registry)


async def new_asset(registry, game_id="game-1", duration=None):
    asset = await registry.create("coach-1", game_id, f"mem://{game_id}.mp4")
    if duration is not None:
        asset, _ = await registry.transition(
            asset.id, ProcessingState.COMPLETED, duration_seconds=duration
        )
    return asset


def clip_request(asset_id, start, end, **kwargs):
    kwargs.setdefault("title", "Pick and roll coverage")
    return ClipCreate(asset_id=asset_id, start_time=start, end_time=end, **kwargs)


@pytest.mark.asyncio
async def test_end_before_start_is_rejected_and_nothing_persisted(timeline, registry):
    asset = await new_asset(registry)

    with pytest.raises(ValidationError) as excinfo:
        await timeline.create_clip(clip_request(asset.id, 10, 5))

    assert excinfo.value.details["field"] == "end_time"
    assert await timeline.list_clips() == []


@pytest.mark.asyncio
async def test_overlapping_clips_on_one_asset_both_persist(timeline, registry):
    asset = await new_asset(registry)

    first = await timeline.create_clip(clip_request(asset.id, 10, 40, title="Transition defence"))
    second = await timeline.create_clip(clip_request(asset.id, 30, 60, title="Help rotation"))

    clips = await timeline.list_clips(ClipFilter(asset_id=asset.id))
    assert [c.id for c in clips] == [first.id, second.id]
    assert second.game_id == "game-1"
    assert second.duration == 30


@pytest.mark.parametrize("start,end", [(-1, 5), (5, 5), (float("nan"), 5), (0, float("inf"))])
@pytest.mark.asyncio
async def test_invalid_ranges(timeline, registry, start, end):
    asset = await new_asset(registry)
    with pytest.raises(ValidationError):
        await timeline.create_clip(clip_request(asset.id, start, end))


@pytest.mark.asyncio
async def test_end_is_bounded_by_duration_once_known(timeline, registry):
    pending = await new_asset(registry, game_id="game-1")
    processed = await new_asset(registry, game_id="game-2", duration=120.0)

    # Duration unknown until processing completes
    await timeline.create_clip(clip_request(pending.id, 100, 5000))
    await timeline.create_clip(clip_request(processed.id, 100, 120))
    with pytest.raises(ValidationError):
        await timeline.create_clip(clip_request(processed.id, 100, 121))


@pytest.mark.asyncio
async def test_player_visibility_requires_assigned_players(timeline, registry):
    asset = await new_asset(registry)

    with pytest.raises(ValidationError) as excinfo:
        await timeline.create_clip(clip_request(asset.id, 0, 8, visibility=Visibility.PLAYER))
    assert excinfo.value.details["field"] == "assigned_player_ids"

    clip = await timeline.create_clip(clip_request(
        asset.id, 0, 8, visibility=Visibility.PLAYER, assigned_player_ids={"p7", "p11"}
    ))
    assert (await timeline.get_clip(clip.id)).assigned_player_ids == {"p7", "p11"}


@pytest.mark.asyncio
async def test_blank_title_is_rejected(timeline, registry):
    asset = await new_asset(registry)
    with pytest.raises(ValidationError):
        await timeline.create_clip(clip_request(asset.id, 0, 4, title="   "))


@pytest.mark.asyncio
async def test_clip_on_unknown_asset_is_not_found(timeline):
    with pytest.raises(AssetNotFoundError):
        await timeline.create_clip(clip_request("missing", 0, 4))


@pytest.mark.asyncio
async def test_update_revalidates_the_merged_clip(timeline, registry):
    asset = await new_asset(registry, duration=90.0)
    clip = await timeline.create_clip(clip_request(asset.id, 10, 20, tags={"defence"}))

    updated = await timeline.update_clip(clip.id, ClipUpdate(end_time=30, priority=Priority.HIGH))
    assert updated.end_time == 30
    assert updated.priority == Priority.HIGH
    assert updated.tags == {"defence"}
    assert (await timeline.get_clip(clip.id)).end_time == 30

    with pytest.raises(ValidationError):
        await timeline.update_clip(clip.id, ClipUpdate(start_time=40))
    with pytest.raises(ValidationError):
        await timeline.update_clip(clip.id, ClipUpdate(end_time=95))
    with pytest.raises(ValidationError):
        await timeline.update_clip(clip.id, ClipUpdate(title=None))
    assert (await timeline.get_clip(clip.id)).start_time == 10


@pytest.mark.asyncio
async def test_null_set_fields_clear_them_on_update(timeline, registry):
    asset = await new_asset(registry)
    team_clip = await timeline.create_clip(clip_request(asset.id, 10, 20, tags={"defence", "zone"}))
    player_clip = await timeline.create_clip(clip_request(
        asset.id, 30, 40, visibility=Visibility.PLAYER, assigned_player_ids={"p7"}
    ))

    updated = await timeline.update_clip(team_clip.id, ClipUpdate(tags=None))
    assert updated.tags == set()
    assert (await timeline.get_clip(team_clip.id)).tags == set()

    with pytest.raises(ValidationError) as excinfo:
        await timeline.update_clip(player_clip.id, ClipUpdate(assigned_player_ids=None, tags=None))
    assert excinfo.value.details["field"] == "assigned_player_ids"
    assert (await timeline.get_clip(player_clip.id)).assigned_player_ids == {"p7"}


@pytest.mark.asyncio
async def test_delete_and_missing_clips(timeline, registry):
    asset = await new_asset(registry)
    clip = await timeline.create_clip(clip_request(asset.id, 0, 4))

    await timeline.delete_clip(clip.id)
    with pytest.raises(ClipNotFoundError):
        await timeline.get_clip(clip.id)
    with pytest.raises(ClipNotFoundError):
        await timeline.delete_clip(clip.id)
    with pytest.raises(ClipNotFoundError):
        await timeline.update_clip(clip.id, ClipUpdate(title="Gone"))


@pytest.mark.asyncio
async def test_filters_tags_and_grouping(timeline, registry):
    asset = await new_asset(registry, game_id="game-1")
    other = await new_asset(registry, game_id="game-2")

    press = await timeline.create_clip(clip_request(
        asset.id, 50, 60, title="Full court press", tags={"defence", "press"}, play_type="Press"
    ))
    inbound = await timeline.create_clip(clip_request(
        asset.id, 5, 15, title="Sideline inbound", description="Stack set for the corner three",
        tags={"offence"}, visibility=Visibility.COACH,
    ))
    await timeline.create_clip(clip_request(other.id, 0, 9, title="Zone offence", tags={"offence"}))

    assert [c.id for c in await timeline.list_clips(ClipFilter(game_id="game-1"))] == [inbound.id, press.id]
    assert [c.id for c in await timeline.list_clips(ClipFilter(search="CORNER"))] == [inbound.id]
    assert [c.id for c in await timeline.list_clips(ClipFilter(search="press"))] == [press.id]
    assert [c.id for c in await timeline.list_clips(ClipFilter(tag="press"))] == [press.id]
    assert [c.id for c in await timeline.list_clips(
        ClipFilter(game_id="game-1", visibility=Visibility.COACH)
    )] == [inbound.id]

    assert await timeline.list_tags() == ["defence", "offence", "press"]
    assert await timeline.list_tags(asset_id=other.id) == ["offence"]

    groups = await timeline.group_by_visibility(ClipFilter(asset_id=asset.id))
    assert [c.id for c in groups[Visibility.TEAM]] == [press.id]
    assert [c.id for c in groups[Visibility.COACH]] == [inbound.id]
    assert groups[Visibility.PLAYER] == []
