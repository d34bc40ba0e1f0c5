"""Models package initialization"""
from .video_asset import (
    VideoAsset,
    ProcessingState,
    VariantQuality,
    TranscodeResult,
    UploadResult,
    VideoSources,
    ALLOWED_TRANSITIONS,
)
from .clip import Clip, ClipCreate, ClipUpdate, ClipFilter, Visibility, Priority

__all__ = [
    "VideoAsset",
    "ProcessingState",
    "VariantQuality",
    "TranscodeResult",
    "UploadResult",
    "VideoSources",
    "ALLOWED_TRANSITIONS",
    "Clip",
    "ClipCreate",
    "ClipUpdate",
    "ClipFilter",
    "Visibility",
    "Priority",
]
