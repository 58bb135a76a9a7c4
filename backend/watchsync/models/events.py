"""
Wire payloads for the Socket.IO event protocol.

Inbound models validate what clients send; outbound models shape what the
server emits. Field aliases carry the camelCase names used on the wire.
"""
import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RoomPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", min_length=1)


class PositionPayload(RoomPayload):
    current_time: float = Field(alias="currentTime")

    @field_validator("current_time")
    @classmethod
    def clamp_position(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("currentTime must be a finite number")
        return max(0.0, value)


class FileLoadedPayload(RoomPayload):
    file_name: str = Field(alias="fileName")


class ChatPayload(RoomPayload):
    text: str = Field(min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")


class SyncStateMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_time: float = Field(alias="currentTime")
    is_playing: bool = Field(alias="isPlaying")
    file_name: Optional[str] = Field(default=None, alias="fileName")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str # "user" or "system"
    text: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    timestamp: float

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)
