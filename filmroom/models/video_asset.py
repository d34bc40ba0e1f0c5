"""
Video Asset Data Models
Represents one uploaded game video and its transcoded artifacts
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict
from enum import Enum
from datetime import datetime, timezone
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessingState(str, Enum):
    """Transcode lifecycle of a video asset"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingState.COMPLETED, ProcessingState.FAILED)

    def can_transition_to(self, target: "ProcessingState") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: Dict[ProcessingState, frozenset] = {
    ProcessingState.PENDING: frozenset({
        ProcessingState.PROCESSING,
        ProcessingState.COMPLETED,
        ProcessingState.FAILED,
    }),
    ProcessingState.PROCESSING: frozenset({
        ProcessingState.COMPLETED,
        ProcessingState.FAILED,
    }),
    ProcessingState.COMPLETED: frozenset(),
    ProcessingState.FAILED: frozenset(),
}


class VariantQuality(str, Enum):
    """Playback qualities produced for an asset"""
    ORIGINAL = "original"
    P1080 = "1080p"
    P720 = "720p"


class VideoAsset(BaseModel):
    """Registry record for one uploaded video"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    game_id: str
    raw_location: str
    file_name: Optional[str] = None
    variants: Dict[VariantQuality, str] = Field(default_factory=dict)
    thumbnails: List[str] = Field(default_factory=list)
    state: ProcessingState = ProcessingState.PENDING
    failure_reason: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, gt=0)
    job_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_state_fields(self) -> "VideoAsset":
        if self.state != ProcessingState.COMPLETED:
            if self.variants or self.thumbnails:
                raise ValueError("variants and thumbnails are only set on completed assets")
            if self.duration_seconds is not None:
                raise ValueError("duration is only known for completed assets")
        if self.state != ProcessingState.FAILED and self.failure_reason:
            raise ValueError("failure_reason is only set on failed assets")
        return self

    @property
    def known_duration(self) -> Optional[float]:
        """Duration usable for clip bounds, once processing has completed"""
        if self.state == ProcessingState.COMPLETED:
            return self.duration_seconds
        return None


class TranscodeResult(BaseModel):
    """Artifacts reported by a completed transcode job"""
    variants: Dict[VariantQuality, str] = Field(default_factory=dict)
    thumbnails: List[str] = Field(default_factory=list)
    duration_seconds: Optional[float] = Field(default=None, gt=0)


class UploadResult(BaseModel):
    """Returned to the uploader once the raw video is registered"""
    asset_id: str
    game_id: str
    variant_location: Optional[str] = None


class VideoSources(BaseModel):
    """Playback view of the latest asset of a game"""
    asset_id: str
    game_id: str
    state: ProcessingState
    failure_reason: Optional[str] = None
    variants: Dict[VariantQuality, str] = Field(default_factory=dict)
    thumbnails: List[str] = Field(default_factory=list)
