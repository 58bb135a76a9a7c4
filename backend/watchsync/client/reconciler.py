import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from watchsync.client.player import MediaPlayer
from watchsync.exceptions import PlayerCommandFailed
from watchsync.models.events import SyncStateMessage

logger = logging.getLogger(__name__)

Emit = Callable[[str, Any], Awaitable[Any]]


class Origin(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class EchoSuppression(str, Enum):
    # Every mutation carries its Origin; remote ones are never announced
    ORIGIN = "origin"
    # Legacy: a remote update swallows the very next local intent
    SINGLE_SHOT = "single_shot"


@dataclass
class SyncPolicy:
    tolerance: float = 0.5
    skip_step: float = 5.0
    apply_paused_sync: bool = False
    echo_suppression: EchoSuppression = EchoSuppression.ORIGIN

    @classmethod
    def from_settings(cls, settings) -> "SyncPolicy":
        return cls(
            tolerance=settings.seek_tolerance,
            skip_step=settings.skip_step,
            apply_paused_sync=settings.apply_paused_sync,
            echo_suppression=EchoSuppression(settings.echo_suppression),
        )


class ClientReconciler:
    """
    Applies room events to the local player and turns user intents into
    protocol events.

    All player mutations go through `perform`, tagged with their Origin.
    REMOTE mutations are applied silently; LOCAL ones are announced with the
    player's position. `remote_marker` records whether the latest mutation
    was imposed remotely. Under SINGLE_SHOT suppression it also swallows the
    next local intent, action and emission both.
    """

    def __init__(self, player: MediaPlayer, room_id: str, emit: Emit, policy: Optional[SyncPolicy] = None):
        self.player = player
        self.room_id = room_id
        self.emit = emit
        self.policy = policy or SyncPolicy()
        self.remote_marker = False
        self.duration: Optional[float] = None
        self.peer_media_label: Optional[str] = None

    async def _command(self, name: str, func, *args):
        try:
            return await func(*args)
        except Exception as e:
            raise PlayerCommandFailed(name, e) from e

    def _consume_marker(self) -> bool:
        """Clears the marker; True if this local intent must be swallowed."""
        was_remote = self.remote_marker
        self.remote_marker = False
        return was_remote and self.policy.echo_suppression == EchoSuppression.SINGLE_SHOT

    async def perform(self, action: str, origin: Origin, position: Optional[float] = None) -> bool:
        """
        Apply play/pause/seek to the local player.

        `position`, when given, is set before play and after pause. Returns
        False if the mutation was suppressed or the player rejected it.
        """
        if action not in ("play", "pause", "seek"):
            raise ValueError(f"Unknown action {action!r}")
        if action == "seek" and position is None:
            raise ValueError("seek needs a position")
        if position is not None:
            position = max(0.0, position)

        if origin == Origin.REMOTE:
            self.remote_marker = True
        elif self._consume_marker():
            logger.debug(f"Suppressed local {action} following a remote update")
            return False

        try:
            if action == "play":
                if position is not None:
                    await self._command("set_position", self.player.set_position, position)
                await self._command("play", self.player.play)
            elif action == "pause":
                await self._command("pause", self.player.pause)
                if position is not None:
                    await self._command("set_position", self.player.set_position, position)
            else:
                await self._command("set_position", self.player.set_position, position)

            if origin == Origin.LOCAL:
                current = position if action == "seek" else await self._command("get_position", self.player.get_position)
                await self.emit(action, {"roomId": self.room_id, "currentTime": current})
        except PlayerCommandFailed as e:
            logger.error(f"{origin.value} {action} not applied: {e}", exc_info=True)
            return False
        return True

    async def _outside_tolerance(self, position: float) -> bool:
        try:
            local = await self._command("get_position", self.player.get_position)
        except PlayerCommandFailed as e:
            logger.error(f"Cannot read local position: {e}")
            return True
        return abs(local - position) > self.policy.tolerance

    # Remote events

    async def on_remote_play(self, position: float):
        logger.debug(f"Remote play at {position}")
        target = position if await self._outside_tolerance(position) else None
        await self.perform("play", Origin.REMOTE, target)

    async def on_remote_pause(self, position: float):
        logger.debug(f"Remote pause at {position}")
        # Compare against the settled position once the player has stopped
        if not await self.perform("pause", Origin.REMOTE):
            return
        if await self._outside_tolerance(position):
            await self.perform("seek", Origin.REMOTE, position)

    async def on_remote_seek(self, position: float):
        logger.debug(f"Remote seek to {position}")
        await self.perform("seek", Origin.REMOTE, position)

    async def on_sync_state(self, data: Any):
        try:
            state = SyncStateMessage.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed sync_state: {e}")
            return
        if state.file_name:
            self.peer_media_label = state.file_name
        if state.is_playing:
            await self.perform("play", Origin.REMOTE, state.current_time)
        elif self.policy.apply_paused_sync:
            await self.perform("pause", Origin.REMOTE, state.current_time)
        else:
            logger.info(f"Room is paused at {state.current_time:.2f}s; not applying")

    async def on_peer_file_loaded(self, file_name: str):
        self.peer_media_label = file_name
        logger.info(f"Peer loaded {file_name}")

    # Host player notifications

    def on_metadata_loaded(self, duration: float):
        self.duration = duration

    async def on_ended(self):
        try:
            await self._command("pause", self.player.pause)
        except PlayerCommandFailed as e:
            logger.error(f"Could not stop player at end of media: {e}")

    # Local intents

    async def play(self) -> bool:
        return await self.perform("play", Origin.LOCAL)

    async def pause(self) -> bool:
        return await self.perform("pause", Origin.LOCAL)

    async def toggle_play(self) -> bool:
        try:
            playing = await self._command("is_playing", self.player.is_playing)
        except PlayerCommandFailed as e:
            logger.error(f"Cannot read play state: {e}")
            return False
        return await (self.pause() if playing else self.play())

    async def seek_to(self, position: float) -> bool:
        return await self.perform("seek", Origin.LOCAL, position)

    async def _skip(self, delta: float) -> bool:
        try:
            current = await self._command("get_position", self.player.get_position)
        except PlayerCommandFailed as e:
            logger.error(f"Cannot read local position: {e}")
            return False
        target = max(0.0, current + delta)
        if self.duration is not None:
            target = min(target, self.duration)
        return await self.seek_to(target)

    async def skip_forward(self) -> bool:
        return await self._skip(self.policy.skip_step)

    async def skip_backward(self) -> bool:
        return await self._skip(-self.policy.skip_step)

    async def load_file(self, file_name: str):
        await self.emit("file_loaded", {"roomId": self.room_id, "fileName": file_name})

    async def request_sync(self):
        await self.emit("sync_request", {"roomId": self.room_id})

    async def report_position(self) -> bool:
        """Send a silent time_update while playing."""
        try:
            if not await self._command("is_playing", self.player.is_playing):
                return False
            position = await self._command("get_position", self.player.get_position)
        except PlayerCommandFailed as e:
            logger.error(f"Cannot report position: {e}")
            return False
        await self.emit("time_update", {"roomId": self.room_id, "currentTime": position})
        return True
