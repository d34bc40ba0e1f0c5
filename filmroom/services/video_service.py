"""
Video Service
Caller-facing operations for uploading game film and reading its playback state
"""

from pathlib import PurePosixPath
from typing import BinaryIO, Optional

from ..config import Settings
from ..models.video_asset import (
    ProcessingState,
    UploadResult,
    VariantQuality,
    VideoAsset,
    VideoSources,
)
from ..utils.exceptions import (
    GameVideoNotFoundError,
    ProcessingFailure,
    ProcessingTimeoutError,
    UnsupportedFormatError,
    UploadTooLargeError,
)
from ..utils.logger import get_logger
from .asset_registry import VideoAssetRegistry
from .blob_store import BlobStore
from .status_tracker import TIMEOUT_REASON, PollingSupervisor, ProcessingStatusTracker
from .transcoder import VIDEO_EXTENSIONS, is_video_file
from .upload_coordinator import ProgressCallback, UploadCoordinator

logger = get_logger()


class VideoService:
    """Thin facade over the coordinator, registry and tracker keyed by game id."""

    def __init__(
        self,
        settings: Settings,
        blob_store: BlobStore,
        registry: VideoAssetRegistry,
        tracker: ProcessingStatusTracker,
        supervisor: PollingSupervisor,
        coordinator: UploadCoordinator
    ):
        self.settings = settings
        self.blob_store = blob_store
        self.registry = registry
        self.tracker = tracker
        self.supervisor = supervisor
        self.coordinator = coordinator

    async def upload_video(
        self,
        owner_id: str,
        game_id: str,
        stream: BinaryIO,
        size_hint: int,
        file_name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> UploadResult:
        """Upload game film and return the new asset with a playable URL of the raw file."""
        if file_name and not is_video_file(file_name):
            raise UnsupportedFormatError(PurePosixPath(file_name).suffix or file_name, list(VIDEO_EXTENSIONS))

        max_bytes = self.settings.max_upload_size_mb * 1024 * 1024
        if size_hint > max_bytes:
            raise UploadTooLargeError(size_hint, self.settings.max_upload_size_mb)

        asset_id = await self.coordinator.begin_upload(
            owner_id=owner_id,
            game_id=game_id,
            stream=stream,
            size_hint=size_hint,
            on_progress=on_progress,
            file_name=file_name,
        )
        asset = await self.registry.get(asset_id)
        return UploadResult(
            asset_id=asset_id,
            game_id=game_id,
            variant_location=await self._sign(asset.raw_location),
        )

    async def cancel_upload(self, game_id: str) -> bool:
        return await self.coordinator.cancel(game_id)

    async def get_video_sources(self, game_id: str, require_completed: bool = False) -> VideoSources:
        asset = await self._latest(game_id)
        if require_completed:
            self._raise_if_failed(asset)
        return await self._sources(asset)

    async def check_processing_status(self, game_id: str) -> ProcessingState:
        """Current state of the game's latest asset; starts polling if it is still running."""
        asset = await self._latest(game_id)
        if not asset.state.is_terminal and not self.supervisor.is_polling(asset.id):
            self.supervisor.start(asset.id)
        return asset.state

    async def refresh(self, game_id: str) -> VideoSources:
        asset = await self._latest(game_id)
        asset = await self.tracker.refresh(asset.id)
        return await self._sources(asset)

    async def resume_polling(self) -> int:
        """Restart pollers for assets left unfinished by a previous process."""
        unfinished = await self.registry.list_unfinished()
        for asset in unfinished:
            self.supervisor.start(asset.id)
        if unfinished:
            logger.info(f"Resumed polling for {len(unfinished)} unfinished asset(s)")
        return len(unfinished)

    async def _latest(self, game_id: str) -> VideoAsset:
        asset = await self.registry.latest_for_game(game_id)
        if asset is None:
            raise GameVideoNotFoundError(game_id)
        return asset

    @staticmethod
    def _raise_if_failed(asset: VideoAsset):
        if asset.state != ProcessingState.FAILED:
            return
        if asset.failure_reason == TIMEOUT_REASON:
            raise ProcessingTimeoutError(asset.id)
        raise ProcessingFailure(asset.id, asset.failure_reason)

    async def _sign(self, location: str) -> Optional[str]:
        try:
            return await self.blob_store.get(location)
        except Exception as e:
            logger.warning(f"Failed to get signed URL for {location}: {e}")
            return None

    async def _sources(self, asset: VideoAsset) -> VideoSources:
        variants = {}
        original = await self._sign(asset.raw_location)
        if original:
            variants[VariantQuality.ORIGINAL] = original
        for quality, location in asset.variants.items():
            signed = await self._sign(location)
            if signed:
                variants[quality] = signed

        thumbnails = []
        for location in asset.thumbnails:
            signed = await self._sign(location)
            if signed:
                thumbnails.append(signed)

        return VideoSources(
            asset_id=asset.id,
            game_id=asset.game_id,
            state=asset.state,
            failure_reason=asset.failure_reason,
            variants=variants,
            thumbnails=thumbnails,
        )
