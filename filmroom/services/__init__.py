"""Services package initialization"""
from .record_store import RecordStore
from .blob_store import BlobStore, S3BlobStore, LocalBlobStore
from .transcoder import TranscodeService, MediaConvertTranscoder, UnavailableTranscoder
from .asset_registry import VideoAssetRegistry
from .status_tracker import ProcessingStatusTracker, PollingSupervisor
from .upload_coordinator import UploadCoordinator, ProgressReporter
from .clip_timeline import ClipTimeline, validate_clip
from .video_service import VideoService
from .container import FilmRoomServices, build_services

__all__ = [
    "RecordStore",
    "BlobStore",
    "S3BlobStore",
    "LocalBlobStore",
    "TranscodeService",
    "MediaConvertTranscoder",
    "UnavailableTranscoder",
    "VideoAssetRegistry",
    "ProcessingStatusTracker",
    "PollingSupervisor",
    "UploadCoordinator",
    "ProgressReporter",
    "ClipTimeline",
    "validate_clip",
    "VideoService",
    "FilmRoomServices",
    "build_services"
]
