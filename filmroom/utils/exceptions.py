"""
Custom Exceptions for FilmRoom
Structured error handling with recovery hints
"""

from typing import Optional, Dict, Any


class FilmRoomError(Exception):
    """Base exception for all FilmRoom errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        recoverable: bool = False,
        recovery_hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to JSON-serializable dict"""
        return {
            "error": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
            "details": self.details
        }


# ============================================================================
# Upload Errors
# ============================================================================

class UploadError(FilmRoomError):
    """Transfer of the raw video to blob storage failed"""

    status_code = 502

    def __init__(self, message: str, game_id: Optional[str] = None, attempts: int = 0, **kwargs):
        super().__init__(
            message=message,
            code="UPLOAD_ERROR",
            recoverable=True,
            recovery_hint="Check your connection and storage credentials, then retry the upload.",
            details={"game_id": game_id, "attempts": attempts, **kwargs}
        )


class TransientTransferError(FilmRoomError):
    """Retryable I/O failure reported by a blob store"""

    status_code = 503

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(
            message=message,
            code="TRANSIENT_TRANSFER_ERROR",
            recoverable=True,
            recovery_hint="The storage service is temporarily unavailable. Retry shortly.",
            details={"key": key}
        )


class UploadCancelledError(FilmRoomError):
    """Upload was cancelled by the caller"""

    status_code = 499

    def __init__(self, game_id: str):
        super().__init__(
            message=f"Upload cancelled for game {game_id}",
            code="UPLOAD_CANCELLED",
            recoverable=True,
            details={"game_id": game_id}
        )


class ConflictError(FilmRoomError):
    """An upload for the same game is already in flight"""

    status_code = 409

    def __init__(self, game_id: str):
        super().__init__(
            message=f"An upload is already in progress for game {game_id}",
            code="CONFLICT",
            recoverable=True,
            recovery_hint="Wait for the current upload to finish or cancel it first.",
            details={"game_id": game_id}
        )


class UnsupportedFormatError(FilmRoomError):
    """Unsupported video format"""

    status_code = 415

    def __init__(self, format_type: str, supported: list):
        super().__init__(
            message=f"Unsupported format: {format_type}",
            code="UNSUPPORTED_FORMAT",
            recoverable=True,
            recovery_hint=f"Convert to a supported format: {', '.join(supported)}",
            details={"format": format_type, "supported": supported}
        )


class UploadTooLargeError(FilmRoomError):
    """Upload exceeds the configured size ceiling"""

    status_code = 413

    def __init__(self, size_bytes: int, max_mb: int):
        super().__init__(
            message=f"File exceeds max upload size ({max_mb}MB)",
            code="UPLOAD_TOO_LARGE",
            recoverable=False,
            recovery_hint="Trim or compress the footage before uploading.",
            details={"size_bytes": size_bytes, "max_mb": max_mb}
        )


# ============================================================================
# Clip Errors
# ============================================================================

class ValidationError(FilmRoomError):
    """Clip invariant violation"""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            recoverable=True,
            recovery_hint="Check the clip fields and try again.",
            details={"field": field, **kwargs}
        )


# ============================================================================
# Lookup Errors
# ============================================================================

class NotFoundError(FilmRoomError):
    """Requested record does not exist"""

    status_code = 404

    def __init__(self, message: str, **details):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            recoverable=False,
            details=details
        )


class AssetNotFoundError(NotFoundError):
    def __init__(self, asset_id: str):
        super().__init__(f"Video asset not found: {asset_id}", asset_id=asset_id)


class ClipNotFoundError(NotFoundError):
    def __init__(self, clip_id: str):
        super().__init__(f"Clip not found: {clip_id}", clip_id=clip_id)


class GameVideoNotFoundError(NotFoundError):
    def __init__(self, game_id: str):
        super().__init__(f"No video uploaded for game: {game_id}", game_id=game_id)


# ============================================================================
# Processing Errors
# ============================================================================

class ProcessingFailure(FilmRoomError):
    """Transcode job reported a terminal failure"""

    status_code = 409

    def __init__(self, asset_id: str, reason: Optional[str] = None, code: str = "PROCESSING_FAILED"):
        super().__init__(
            message=f"Video processing failed for {asset_id}: {reason or 'unknown reason'}",
            code=code,
            recoverable=False,
            recovery_hint="Upload the footage again to start a new processing job.",
            details={"asset_id": asset_id, "reason": reason}
        )


class ProcessingTimeoutError(ProcessingFailure):
    """Processing exceeded the polling ceiling"""

    def __init__(self, asset_id: str, timeout_seconds: Optional[float] = None):
        super().__init__(asset_id, reason="processing timeout", code="PROCESSING_TIMEOUT")
        self.details["timeout_seconds"] = timeout_seconds


class InvalidTransitionError(FilmRoomError):
    """Requested processing-state change is not allowed"""

    status_code = 409

    def __init__(self, asset_id: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move asset {asset_id} from {current} to {target}",
            code="INVALID_TRANSITION",
            recoverable=False,
            details={"asset_id": asset_id, "current": current, "target": target}
        )


class TranscodeSubmitError(FilmRoomError):
    """Transcode job could not be submitted"""

    status_code = 502

    def __init__(self, asset_id: str, reason: str):
        super().__init__(
            message=f"Failed to submit transcode job for {asset_id}: {reason}",
            code="TRANSCODE_SUBMIT_ERROR",
            recoverable=True,
            recovery_hint="Check the MediaConvert role and endpoint configuration.",
            details={"asset_id": asset_id, "reason": reason}
        )


class TranscodeLookupError(FilmRoomError):
    """Transcode job status could not be read"""

    status_code = 503

    def __init__(self, asset_id: str, reason: str):
        super().__init__(
            message=f"Transcode status unavailable for {asset_id}: {reason}",
            code="TRANSCODE_LOOKUP_ERROR",
            recoverable=True,
            details={"asset_id": asset_id, "reason": reason}
        )
