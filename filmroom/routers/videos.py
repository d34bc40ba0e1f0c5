"""
Videos Router
Handles game film upload, cancellation and processing status.
"""

import os

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from ..models.video_asset import ProcessingState, UploadResult, VideoAsset, VideoSources
from ..services.container import FilmRoomServices
from ..services.transcoder import VIDEO_EXTENSIONS, is_video_file
from ..utils.exceptions import UnsupportedFormatError
from ..utils.logger import get_logger
from .deps import get_services
from .websocket import broadcast_upload_progress

router = APIRouter(prefix="/api", tags=["videos"])
logger = get_logger()


class ProcessingStatusResponse(BaseModel):
    game_id: str
    state: ProcessingState


def _upload_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    position = file.file.tell()
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(position)
    return size


@router.post("/games/{game_id}/video", response_model=UploadResult)
async def upload_game_video(
    game_id: str,
    owner_id: str = Form(...),
    file: UploadFile = File(...),
    services: FilmRoomServices = Depends(get_services),
):
    """Upload game film; progress is streamed over /ws."""
    if file.content_type and not file.content_type.startswith("video/"):
        if not is_video_file(file.filename or ""):
            raise UnsupportedFormatError(file.content_type, list(VIDEO_EXTENSIONS))

    try:
        return await services.videos.upload_video(
            owner_id=owner_id,
            game_id=game_id,
            stream=file.file,
            size_hint=_upload_size(file),
            file_name=file.filename,
            on_progress=lambda percent: broadcast_upload_progress(game_id, percent),
        )
    finally:
        await file.close()


@router.delete("/games/{game_id}/video/upload")
async def cancel_game_video_upload(
    game_id: str,
    services: FilmRoomServices = Depends(get_services),
):
    """Cancel the in-flight upload for a game."""
    cancelled = await services.videos.cancel_upload(game_id)
    return {"game_id": game_id, "cancelled": cancelled}


@router.get("/games/{game_id}/video", response_model=VideoSources)
async def get_game_video_sources(
    game_id: str,
    services: FilmRoomServices = Depends(get_services),
):
    """Signed playback URLs and thumbnails for the game's latest video."""
    return await services.videos.get_video_sources(game_id)


@router.get("/games/{game_id}/video/status", response_model=ProcessingStatusResponse)
async def get_game_video_status(
    game_id: str,
    services: FilmRoomServices = Depends(get_services),
):
    state = await services.videos.check_processing_status(game_id)
    return ProcessingStatusResponse(game_id=game_id, state=state)


@router.post("/games/{game_id}/video/refresh", response_model=VideoSources)
async def refresh_game_video(
    game_id: str,
    services: FilmRoomServices = Depends(get_services),
):
    """Check the transcode job now instead of waiting for the next poll."""
    return await services.videos.refresh(game_id)


@router.get("/videos/{asset_id}", response_model=VideoAsset)
async def get_video_asset(
    asset_id: str,
    services: FilmRoomServices = Depends(get_services),
):
    return await services.registry.get(asset_id)
