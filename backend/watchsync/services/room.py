import logging
import time
from typing import Callable, Dict, List, Optional, Set

from watchsync.models.room import Room

logger = logging.getLogger(__name__)


class EvictionPolicy:
    """Decides whether a room may be dropped from the registry."""

    def should_evict(self, room: Room, now: float) -> bool:
        raise NotImplementedError


class NeverEvict(EvictionPolicy):
    """Rooms live for the process lifetime."""

    def should_evict(self, room: Room, now: float) -> bool:
        return False


class IdleTimeoutEviction(EvictionPolicy):
    """Evicts empty rooms that saw no activity for `timeout` seconds."""

    def __init__(self, timeout: float):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout

    def should_evict(self, room: Room, now: float) -> bool:
        return not room.members and now - room.last_activity > self.timeout


def policy_from_timeout(timeout: Optional[float]) -> EvictionPolicy:
    if timeout is None:
        return NeverEvict()
    return IdleTimeoutEviction(timeout)


class RoomRegistry:
    """
    Process-wide mapping from room id to Room.

    Rooms are created lazily by `join` and are only ever removed by `reap`,
    according to the configured eviction policy.
    """

    def __init__(self, policy: Optional[EvictionPolicy] = None, clock: Callable[[], float] = time.time):
        self.policy = policy or NeverEvict()
        self.clock = clock
        self._rooms: Dict[str, Room] = {}
        # sid -> room ids, so a disconnect can leave every joined room
        self._memberships: Dict[str, Set[str]] = {}

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, room_id: str):
        return room_id in self._rooms

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            now = self.clock()
            room = Room(id=room_id, created_at=now, last_activity=now)
            room.playback.last_update = now
            self._rooms[room_id] = room
            logger.info(f"Created room {room_id}")
        return room

    def add_member(self, room_id: str, sid: str) -> Room:
        room = self.get_or_create(room_id)
        room.members.add(sid)
        room.last_activity = self.clock()
        self._memberships.setdefault(sid, set()).add(room_id)
        return room

    def remove_member(self, sid: str) -> List[Room]:
        """Drop `sid` from every room it joined; returns the rooms it left."""
        left = []
        for room_id in self._memberships.pop(sid, set()):
            room = self._rooms.get(room_id)
            if room and sid in room.members:
                room.members.discard(sid)
                room.last_activity = self.clock()
                left.append(room)
        return left

    def rooms_of(self, sid: str) -> Set[str]:
        return set(self._memberships.get(sid, set()))

    def touch(self, room: Room):
        room.last_activity = self.clock()

    def reap(self) -> List[str]:
        now = self.clock()
        evicted = [rid for rid, room in self._rooms.items() if self.policy.should_evict(room, now)]
        for rid in evicted:
            del self._rooms[rid]
            logger.info(f"Evicted idle room {rid}")
        return evicted
