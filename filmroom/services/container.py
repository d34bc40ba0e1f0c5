"""
Service Container
Explicitly wires the record store, storage collaborators and core services.
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..config import Settings
from ..utils.logger import get_logger
from .asset_registry import VideoAssetRegistry
from .blob_store import BlobStore, LocalBlobStore, S3BlobStore
from .clip_timeline import ClipTimeline
from .record_store import RecordStore
from .status_tracker import PollingSupervisor, ProcessingStatusTracker, TransitionListener
from .transcoder import MediaConvertTranscoder, TranscodeService, UnavailableTranscoder
from .upload_coordinator import UploadCoordinator
from .video_service import VideoService

logger = get_logger()


@dataclass
class FilmRoomServices:
    """Everything the HTTP layer needs, built once per application."""
    settings: Settings
    store: RecordStore
    blob_store: BlobStore
    transcoder: TranscodeService
    registry: VideoAssetRegistry
    tracker: ProcessingStatusTracker
    supervisor: PollingSupervisor
    coordinator: UploadCoordinator
    timeline: ClipTimeline
    videos: VideoService

    async def start(self):
        await self.store.initialize()
        await self.videos.resume_polling()

    async def stop(self):
        await self.supervisor.stop_all()


def build_services(
    settings: Settings,
    blob_store: Optional[BlobStore] = None,
    transcoder: Optional[TranscodeService] = None,
    store: Optional[RecordStore] = None,
    on_transition: Optional[TransitionListener] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> FilmRoomServices:
    """Build the service graph; collaborators not passed in are chosen from settings."""
    if store is None:
        store = RecordStore(str(Path(settings.data_dir) / "filmroom.db"))

    if blob_store is None:
        if settings.s3_configured:
            blob_store = S3BlobStore(settings)
        else:
            logger.info(f"S3 not configured, storing uploads under {settings.local_blob_dir}")
            blob_store = LocalBlobStore(settings.local_blob_dir)

    if transcoder is None:
        if settings.mediaconvert_configured:
            transcoder = MediaConvertTranscoder(settings)
        else:
            logger.warning("MediaConvert not configured, uploaded videos will not be transcoded")
            transcoder = UnavailableTranscoder()

    registry = VideoAssetRegistry(store)
    tracker = ProcessingStatusTracker(registry, transcoder, on_transition=on_transition)
    supervisor = PollingSupervisor(
        tracker,
        interval=settings.processing_poll_interval_seconds,
        max_duration=settings.processing_timeout_seconds,
        clock=clock,
        sleep=sleep,
    )
    coordinator = UploadCoordinator(
        blob_store,
        registry,
        transcoder,
        supervisor=supervisor,
        max_attempts=settings.upload_max_attempts,
        retry_base_delay=settings.upload_retry_base_delay,
        key_prefix=settings.video_key_prefix,
    )
    timeline = ClipTimeline(store, registry)
    videos = VideoService(settings, blob_store, registry, tracker, supervisor, coordinator)

    return FilmRoomServices(
        settings=settings,
        store=store,
        blob_store=blob_store,
        transcoder=transcoder,
        registry=registry,
        tracker=tracker,
        supervisor=supervisor,
        coordinator=coordinator,
        timeline=timeline,
        videos=videos,
    )
