import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from socketio.exceptions import BadNamespaceError, TimeoutError as AckTimeout

logger = logging.getLogger(__name__)


class LatencyProbe:
    """
    Periodic round-trip timer on a Socket.IO connection.

    `call` has the signature of `socketio.AsyncClient.call`. The server acks
    `ping` immediately; the elapsed time is kept in `latency_ms` for display
    and never feeds into sync decisions.
    """

    def __init__(self, call: Callable[..., Awaitable[Any]], interval: float = 2.0, timeout: float = 5.0,
                 clock: Callable[[], float] = time.monotonic):
        self.call = call
        self.interval = interval
        self.timeout = timeout
        self.clock = clock
        self.latency_ms: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    async def probe_once(self) -> Optional[float]:
        start = self.clock()
        try:
            await self.call("ping", timeout=self.timeout)
        except AckTimeout:
            logger.warning(f"Ping not acknowledged within {self.timeout}s")
            return None
        except BadNamespaceError:
            logger.debug("Ping skipped, not connected")
            return None
        self.latency_ms = (self.clock() - start) * 1000
        return self.latency_ms

    async def run(self):
        while True:
            await self.probe_once()
            await asyncio.sleep(self.interval)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
