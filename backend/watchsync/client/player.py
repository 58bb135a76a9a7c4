"""
Host media-playback capability.

The sync client never decodes or renders video. It drives whatever player
the host provides through `MediaPlayer`, and the host reports metadata and
end-of-media back to the reconciler.
"""
import time
from typing import Callable, Optional, Protocol


class MediaPlayer(Protocol):
    async def get_position(self) -> float: ...

    async def set_position(self, seconds: float) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def is_playing(self) -> bool: ...


class ClockPlayer:
    """
    Headless player backed by a local clock.

    Position advances with the clock while playing, exactly like a media
    element would. Useful for bots, demos and tests.
    """

    def __init__(self, duration: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.duration = duration
        self.clock = clock
        self._position = 0.0
        self._started_at: Optional[float] = None

    def _now_position(self) -> float:
        position = self._position
        if self._started_at is not None:
            position += self.clock() - self._started_at
        if self.duration is not None:
            position = min(position, self.duration)
        return position

    async def get_position(self) -> float:
        return self._now_position()

    async def set_position(self, seconds: float) -> None:
        self._position = max(0.0, seconds)
        if self._started_at is not None:
            self._started_at = self.clock()

    async def play(self) -> None:
        if self._started_at is None:
            self._started_at = self.clock()

    async def pause(self) -> None:
        self._position = self._now_position()
        self._started_at = None

    async def is_playing(self) -> bool:
        return self._started_at is not None
