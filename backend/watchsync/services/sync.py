import logging
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from watchsync.exceptions import MalformedPayload
from watchsync.models.events import (
    ChatMessage,
    ChatPayload,
    FileLoadedPayload,
    PositionPayload,
    RoomPayload,
    SyncStateMessage,
)
from watchsync.models.room import PlaybackStatus, Room
from watchsync.services.room import RoomRegistry

logger = logging.getLogger(__name__)

Emit = Callable[..., Awaitable[Any]]
P = TypeVar("P", bound=BaseModel)


def parse_payload(event: str, model: Type[P], data: Any) -> P:
    if not isinstance(data, dict):
        raise MalformedPayload(event, "payload must be an object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "payload" for err in e.errors())
        raise MalformedPayload(event, f"invalid fields: {fields}") from e


class SyncProtocol:
    """
    Server side of the playback sync protocol.

    Every handler is addressed to a room by id. Events naming a room that was
    never joined are dropped without a reply. Mutations are last-writer-wins
    in arrival order; play/pause/seek relays go to every member except the
    sender and carry the raw reported position.

    `emit` has the signature of `socketio.AsyncServer.emit`; only the `to=`
    form is used so that membership is decided by the registry.
    """

    def __init__(self, registry: RoomRegistry, emit: Emit):
        self.registry = registry
        self.emit = emit

    @property
    def clock(self):
        return self.registry.clock

    def _room(self, event: str, room_id: str) -> Optional[Room]:
        room = self.registry.get_room(room_id)
        if room is None:
            logger.debug(f"Ignoring {event} for unknown room {room_id}")
        return room

    async def _relay(self, room: Room, sender: str, event: str, payload: Any):
        for member in sorted(room.members):
            if member != sender:
                await self.emit(event, payload, to=member)

    async def _broadcast(self, room: Room, event: str, payload: Any):
        for member in sorted(room.members):
            await self.emit(event, payload, to=member)

    async def join(self, sid: str, data: Any):
        # Clients send the bare room id; an object with roomId is accepted too
        if isinstance(data, str):
            data = {"roomId": data}
        payload = parse_payload("join", RoomPayload, data)

        room = self.registry.add_member(payload.room_id, sid)
        logger.info(f"User {sid} joined room {room.id} ({len(room.members)} members)")
        notice = ChatMessage(type="system", text=f"User {sid} joined the room", user_id=sid, timestamp=self.clock())
        await self._broadcast(room, "chat_message", notice.to_wire())

    async def file_loaded(self, sid: str, data: Any):
        payload = parse_payload("file_loaded", FileLoadedPayload, data)
        room = self._room("file_loaded", payload.room_id)
        if not room:
            return
        room.media_label = payload.file_name
        self.registry.touch(room)
        logger.info(f"Room {room.id} file loaded by {sid}: {payload.file_name}")
        await self._relay(room, sid, "peer_file_loaded", payload.file_name)

    async def _transition(self, event: str, sid: str, data: Any, status: Optional[PlaybackStatus]):
        payload = parse_payload(event, PositionPayload, data)
        room = self._room(event, payload.room_id)
        if not room:
            return
        room.playback.checkpoint(payload.current_time, self.clock(), status)
        self.registry.touch(room)
        logger.info(f"Room {room.id} {event} at {payload.current_time} (from {sid})")
        await self._relay(room, sid, event, payload.current_time)

    async def play(self, sid: str, data: Any):
        await self._transition("play", sid, data, PlaybackStatus.PLAYING)

    async def pause(self, sid: str, data: Any):
        await self._transition("pause", sid, data, PlaybackStatus.PAUSED)

    async def seek(self, sid: str, data: Any):
        await self._transition("seek", sid, data, None)

    async def time_update(self, sid: str, data: Any):
        """Silent position report from a playing client; never relayed."""
        payload = parse_payload("time_update", PositionPayload, data)
        room = self._room("time_update", payload.room_id)
        if not room:
            return
        if not room.playback.is_playing:
            logger.debug(f"Ignoring time_update for paused room {room.id}")
            return
        room.playback.checkpoint(payload.current_time, self.clock())
        self.registry.touch(room)

    def snapshot(self, room: Room) -> SyncStateMessage:
        playback = room.playback
        return SyncStateMessage(
            current_time=playback.effective_position(self.clock()),
            is_playing=playback.is_playing,
            file_name=room.media_label,
        )

    async def sync_request(self, sid: str, data: Any) -> Optional[SyncStateMessage]:
        payload = parse_payload("sync_request", RoomPayload, data)
        room = self._room("sync_request", payload.room_id)
        if not room:
            return None
        state = self.snapshot(room)
        logger.info(f"Sync requested for room {room.id} by {sid}: {state.current_time:.3f}s playing={state.is_playing}")
        await self.emit("sync_state", state.to_wire(), to=sid)
        return state

    async def send_chat(self, sid: str, data: Any):
        payload = parse_payload("send_chat", ChatPayload, data)
        room = self._room("send_chat", payload.room_id)
        if not room:
            return
        message = ChatMessage(type="user", text=payload.text, user_id=payload.user_id or sid, timestamp=self.clock())
        await self._broadcast(room, "chat_message", message.to_wire())

    async def leave(self, sid: str):
        for room in self.registry.remove_member(sid):
            logger.info(f"User {sid} left room {room.id} ({len(room.members)} members)")
