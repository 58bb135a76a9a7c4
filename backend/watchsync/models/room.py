from enum import Enum
from typing import Optional, Set

from pydantic import BaseModel, Field


class PlaybackStatus(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackState(BaseModel):
    status: PlaybackStatus = PlaybackStatus.PAUSED
    position: float = 0.0 # True position at last_update, seconds
    last_update: float = 0.0 # Server time of the last authoritative write

    @property
    def is_playing(self) -> bool:
        return self.status == PlaybackStatus.PLAYING

    def effective_position(self, now: float) -> float:
        """
        Drift-compensated position at `now`.
        The checkpoint is never ticked forward; elapsed time is only added here.
        """
        if not self.is_playing:
            return self.position
        return self.position + max(0.0, now - self.last_update)

    def checkpoint(self, position: float, now: float, status: Optional[PlaybackStatus] = None):
        if status is not None:
            self.status = status
        self.position = position
        self.last_update = now


class Room(BaseModel):
    id: str
    members: Set[str] = Field(default_factory=set) # Connection ids (Socket.IO sids)
    media_label: Optional[str] = None # Last file name reported, advisory only
    playback: PlaybackState = Field(default_factory=PlaybackState)
    created_at: float
    last_activity: float
