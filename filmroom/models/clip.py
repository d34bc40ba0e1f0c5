"""
Clip Data Models
Represents a coach annotation over a time range of a game video
"""

from pydantic import BaseModel, Field, computed_field
from typing import Optional, Set
from enum import Enum
from datetime import datetime
import uuid

from .video_asset import utcnow


class Visibility(str, Enum):
    """Who can review a clip"""
    TEAM = "team"
    PLAYER = "player"
    COACH = "coach"


class Priority(str, Enum):
    """Review priority"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ClipCreate(BaseModel):
    """Request model for creating a clip"""
    asset_id: str
    start_time: float
    end_time: float
    title: str
    description: Optional[str] = None
    visibility: Visibility = Visibility.TEAM
    assigned_player_ids: Set[str] = Field(default_factory=set)
    tags: Set[str] = Field(default_factory=set)
    play_type: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    coach_notes: Optional[str] = None
    learning_objective: Optional[str] = None


class ClipUpdate(BaseModel):
    """Partial update; unset fields are left unchanged"""
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    title: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[Visibility] = None
    assigned_player_ids: Optional[Set[str]] = None
    tags: Optional[Set[str]] = None
    play_type: Optional[str] = None
    priority: Optional[Priority] = None
    coach_notes: Optional[str] = None
    learning_objective: Optional[str] = None


class Clip(BaseModel):
    """Complete clip model"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    asset_id: str
    game_id: str
    start_time: float
    end_time: float
    title: str
    description: Optional[str] = None
    visibility: Visibility = Visibility.TEAM
    assigned_player_ids: Set[str] = Field(default_factory=set)
    tags: Set[str] = Field(default_factory=set)
    play_type: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    coach_notes: Optional[str] = None
    learning_objective: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


class ClipFilter(BaseModel):
    """Constraints for listing clips; unset fields match everything"""
    asset_id: Optional[str] = None
    game_id: Optional[str] = None
    visibility: Optional[Visibility] = None
    tag: Optional[str] = None
    search: Optional[str] = None

    def matches(self, clip: Clip) -> bool:
        if self.asset_id and clip.asset_id != self.asset_id:
            return False
        if self.game_id and clip.game_id != self.game_id:
            return False
        if self.visibility and clip.visibility != self.visibility:
            return False
        if self.tag and self.tag not in clip.tags:
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = (clip.title, clip.description, clip.play_type)
            if not any(text and needle in text.lower() for text in haystacks):
                return False
        return True
