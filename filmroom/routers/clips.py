"""
Clips Router
Handles timeline clips cut from a game's video.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status

from ..models.clip import Clip, ClipCreate, ClipFilter, ClipUpdate, Visibility
from ..services.container import FilmRoomServices
from ..utils.logger import get_logger
from .deps import get_services

router = APIRouter(prefix="/api/clips", tags=["clips"])
logger = get_logger()


@router.post("", response_model=Clip, status_code=status.HTTP_201_CREATED)
async def create_clip(
    data: ClipCreate,
    services: FilmRoomServices = Depends(get_services),
):
    """Mark a time range of an asset as a clip."""
    return await services.timeline.create_clip(data)


@router.get("", response_model=List[Clip])
async def list_clips(
    asset_id: Optional[str] = None,
    game_id: Optional[str] = None,
    visibility: Optional[Visibility] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    services: FilmRoomServices = Depends(get_services),
):
    """List clips in timeline order, optionally filtered."""
    clip_filter = ClipFilter(
        asset_id=asset_id,
        game_id=game_id,
        visibility=visibility,
        tag=tag,
        search=search,
    )
    return await services.timeline.list_clips(clip_filter)


@router.get("/tags", response_model=List[str])
async def list_clip_tags(
    asset_id: Optional[str] = None,
    game_id: Optional[str] = None,
    services: FilmRoomServices = Depends(get_services),
):
    return await services.timeline.list_tags(asset_id=asset_id, game_id=game_id)


@router.get("/grouped", response_model=Dict[Visibility, List[Clip]])
async def group_clips_by_visibility(
    asset_id: Optional[str] = None,
    game_id: Optional[str] = None,
    services: FilmRoomServices = Depends(get_services),
):
    clip_filter = ClipFilter(asset_id=asset_id, game_id=game_id)
    return await services.timeline.group_by_visibility(clip_filter)


@router.get("/{clip_id}", response_model=Clip)
async def get_clip(
    clip_id: str,
    services: FilmRoomServices = Depends(get_services),
):
    return await services.timeline.get_clip(clip_id)


@router.patch("/{clip_id}", response_model=Clip)
async def update_clip(
    clip_id: str,
    changes: ClipUpdate,
    services: FilmRoomServices = Depends(get_services),
):
    """Change a clip's range or metadata; the result is revalidated."""
    return await services.timeline.update_clip(clip_id, changes)


@router.delete("/{clip_id}")
async def delete_clip(
    clip_id: str,
    services: FilmRoomServices = Depends(get_services),
):
    await services.timeline.delete_clip(clip_id)
    logger.info(f"Deleted clip via API: {clip_id}")
    return {"deleted": clip_id}
