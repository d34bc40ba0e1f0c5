"""
Clip Timeline Service
Creates, validates and queries time-range annotations over video assets.
"""

import math
from typing import Dict, List, Optional

from pydantic import ValidationError as SchemaError

from ..models.clip import Clip, ClipCreate, ClipFilter, ClipUpdate, Visibility
from ..models.video_asset import utcnow
from ..utils.exceptions import ClipNotFoundError, ValidationError
from ..utils.logger import get_logger
from .asset_registry import VideoAssetRegistry
from .record_store import RecordStore

logger = get_logger()

_REQUIRED_FIELDS = ("start_time", "end_time", "title", "visibility", "priority")
# Sending null for a set field clears it
_SET_FIELDS = ("assigned_player_ids", "tags")


def validate_clip(clip: Clip, asset_duration: Optional[float] = None):
    """
    Check clip invariants, raising ValidationError on the first violation.

    The end bound is only checked when the asset duration is known, i.e.
    after processing has completed. Overlap with other clips is allowed.
    """
    if not clip.title or not clip.title.strip():
        raise ValidationError("Clip title is required", field="title")

    for name in ("start_time", "end_time"):
        if not math.isfinite(getattr(clip, name)):
            raise ValidationError(f"{name} must be a finite number of seconds", field=name)

    if clip.start_time < 0:
        raise ValidationError(
            "Clip cannot start before the beginning of the video",
            field="start_time",
            start_time=clip.start_time,
        )
    if clip.end_time <= clip.start_time:
        raise ValidationError(
            "Clip end time must be after its start time",
            field="end_time",
            start_time=clip.start_time,
            end_time=clip.end_time,
        )
    if asset_duration is not None and clip.end_time > asset_duration:
        raise ValidationError(
            f"Clip ends after the video ({asset_duration:.1f}s)",
            field="end_time",
            end_time=clip.end_time,
            asset_duration=asset_duration,
        )
    if clip.visibility == Visibility.PLAYER and not clip.assigned_player_ids:
        raise ValidationError(
            "Player clips must be assigned to at least one player",
            field="assigned_player_ids",
        )


class ClipTimeline:
    """Clip CRUD and queries. Every read goes to the record store."""

    def __init__(self, store: RecordStore, registry: VideoAssetRegistry):
        self.store = store
        self.registry = registry

    async def _asset_duration(self, asset_id: str) -> Optional[float]:
        asset = await self.store.get_asset(asset_id)
        return asset.known_duration if asset else None

    async def create_clip(self, data: ClipCreate) -> Clip:
        asset = await self.registry.get(data.asset_id)
        clip = Clip(**data.model_dump(), game_id=asset.game_id)
        validate_clip(clip, asset.known_duration)

        await self.store.create_clip(clip)
        logger.info(
            f"Clip {clip.id} created on asset {clip.asset_id} "
            f"[{clip.start_time:.1f}s - {clip.end_time:.1f}s] ({clip.visibility.value})"
        )
        return clip

    async def get_clip(self, clip_id: str) -> Clip:
        clip = await self.store.get_clip(clip_id)
        if clip is None:
            raise ClipNotFoundError(clip_id)
        return clip

    async def update_clip(self, clip_id: str, changes: ClipUpdate) -> Clip:
        current = await self.get_clip(clip_id)
        fields = changes.model_dump(exclude_unset=True)

        for name in _REQUIRED_FIELDS:
            if name in fields and fields[name] is None:
                raise ValidationError(f"{name} cannot be cleared", field=name)
        for name in _SET_FIELDS:
            if name in fields and fields[name] is None:
                fields[name] = set()

        data = current.model_dump(exclude={"duration"})
        data.update(fields)
        data["updated_at"] = utcnow()
        try:
            updated = Clip(**data)
        except SchemaError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or None
            raise ValidationError(error["msg"], field=field) from e
        validate_clip(updated, await self._asset_duration(updated.asset_id))

        if not await self.store.update_clip(updated):
            raise ClipNotFoundError(clip_id)
        logger.info(f"Clip {clip_id} updated ({', '.join(sorted(fields)) or 'no changes'})")
        return updated

    async def delete_clip(self, clip_id: str):
        if not await self.store.delete_clip(clip_id):
            raise ClipNotFoundError(clip_id)
        logger.info(f"Clip {clip_id} deleted")

    async def list_clips(self, clip_filter: Optional[ClipFilter] = None) -> List[Clip]:
        """Clips matching the filter, in timeline order."""
        clip_filter = clip_filter or ClipFilter()
        clips = await self.store.list_clips(
            asset_id=clip_filter.asset_id,
            game_id=clip_filter.game_id,
        )
        matching = [clip for clip in clips if clip_filter.matches(clip)]
        return sorted(matching, key=lambda clip: (clip.start_time, clip.created_at))

    async def list_tags(
        self,
        asset_id: Optional[str] = None,
        game_id: Optional[str] = None
    ) -> List[str]:
        """Distinct tags used by the selected clips."""
        clips = await self.store.list_clips(asset_id=asset_id, game_id=game_id)
        tags = set()
        for clip in clips:
            tags.update(clip.tags)
        return sorted(tags)

    async def group_by_visibility(
        self,
        clip_filter: Optional[ClipFilter] = None
    ) -> Dict[Visibility, List[Clip]]:
        groups: Dict[Visibility, List[Clip]] = {visibility: [] for visibility in Visibility}
        for clip in await self.list_clips(clip_filter):
            groups[clip.visibility].append(clip)
        return groups
