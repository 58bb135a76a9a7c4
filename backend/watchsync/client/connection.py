import logging
from typing import List, Optional

import socketio
from socketio.exceptions import BadNamespaceError

from watchsync.client.latency import LatencyProbe
from watchsync.client.player import MediaPlayer
from watchsync.client.reconciler import ClientReconciler, SyncPolicy
from watchsync.config import Settings, get_settings

logger = logging.getLogger(__name__)


class SyncClient:
    """
    One peer: a Socket.IO connection bound to a room and a local player.

    The transport retries a fixed number of times with a fixed delay. Every
    (re)connect rejoins the room; missed state is not replayed unless
    `sync_on_connect` is set or the caller invokes `request_sync`.
    """

    def __init__(self, room_id: str, player: MediaPlayer, settings: Optional[Settings] = None,
                 policy: Optional[SyncPolicy] = None):
        self.settings = settings or get_settings()
        self.room_id = room_id
        self.sio = socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=self.settings.reconnection_attempts,
            reconnection_delay=self.settings.reconnection_delay,
            reconnection_delay_max=self.settings.reconnection_delay,
            randomization_factor=0,
        )
        self.reconciler = ClientReconciler(
            player, room_id, self.emit, policy or SyncPolicy.from_settings(self.settings)
        )
        self.latency = LatencyProbe(self.sio.call, self.settings.ping_interval, self.settings.ping_timeout)
        self.chat_messages: List[dict] = []

        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("play", self.reconciler.on_remote_play)
        self.sio.on("pause", self.reconciler.on_remote_pause)
        self.sio.on("seek", self.reconciler.on_remote_seek)
        self.sio.on("sync_state", self.reconciler.on_sync_state)
        self.sio.on("peer_file_loaded", self.reconciler.on_peer_file_loaded)
        self.sio.on("chat_message", self.on_chat_message)
        self.sio.on("error", self.on_error)

    async def emit(self, event: str, data):
        try:
            await self.sio.emit(event, data)
        except BadNamespaceError:
            # Not connected; the intent is dropped and a resync is up to the caller
            logger.warning(f"Dropped {event}, not connected")

    async def on_connect(self):
        logger.info(f"Connected as {self.sio.get_sid()}, joining room {self.room_id}")
        await self.sio.emit("join", self.room_id)
        if self.settings.sync_on_connect:
            await self.reconciler.request_sync()
        self.latency.start()

    async def on_disconnect(self, reason=None):
        logger.warning(f"Disconnected: {reason}")

    async def on_chat_message(self, message: dict):
        self.chat_messages.append(message)
        logger.info(f"[{message.get('type')}] {message.get('userId')}: {message.get('text')}")

    async def on_error(self, data: dict):
        logger.warning(f"Server rejected {data.get('event')}: {data.get('message')}")

    async def connect(self, url: Optional[str] = None):
        await self.sio.connect(url or self.settings.server_url, transports=["websocket", "polling"])

    async def send_chat(self, text: str, user_id: Optional[str] = None):
        await self.sio.emit("send_chat", {"roomId": self.room_id, "text": text, "userId": user_id})

    async def wait(self):
        await self.sio.wait()

    async def close(self):
        await self.latency.stop()
        await self.sio.disconnect()
