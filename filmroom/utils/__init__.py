"""Utils package initialization"""
from .logger import setup_logger, get_logger
from .exceptions import (
    FilmRoomError,
    UploadError,
    TransientTransferError,
    UploadCancelledError,
    ConflictError,
    UnsupportedFormatError,
    UploadTooLargeError,
    ValidationError,
    NotFoundError,
    AssetNotFoundError,
    ClipNotFoundError,
    GameVideoNotFoundError,
    ProcessingFailure,
    ProcessingTimeoutError,
    InvalidTransitionError,
    TranscodeSubmitError,
    TranscodeLookupError
)
from .retry import retry_async, backoff_delay

__all__ = [
    "setup_logger",
    "get_logger",
    "FilmRoomError",
    "UploadError",
    "TransientTransferError",
    "UploadCancelledError",
    "ConflictError",
    "UnsupportedFormatError",
    "UploadTooLargeError",
    "ValidationError",
    "NotFoundError",
    "AssetNotFoundError",
    "ClipNotFoundError",
    "GameVideoNotFoundError",
    "ProcessingFailure",
    "ProcessingTimeoutError",
    "InvalidTransitionError",
    "TranscodeSubmitError",
    "TranscodeLookupError",
    "retry_async",
    "backoff_delay"
]
