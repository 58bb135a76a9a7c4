import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

import socketio
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from watchsync.config import get_settings
from watchsync.exceptions import MalformedPayload
from watchsync.services.room import RoomRegistry, policy_from_timeout
from watchsync.services.sync import SyncProtocol

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

origins = settings.origins or ["*"]

registry = RoomRegistry(policy=policy_from_timeout(settings.room_idle_timeout))

sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins=origins if origins != ["*"] else "*")
protocol = SyncProtocol(registry, sio.emit)


async def reap_rooms():
    while True:
        await asyncio.sleep(settings.reap_interval)
        evicted = registry.reap()
        if evicted:
            logger.info(f"Reaped {len(evicted)} idle rooms")


@asynccontextmanager
async def lifespan(app: FastAPI):
    reaper = None
    # The default policy never evicts, so no sweeper is needed
    if settings.room_idle_timeout is not None:
        reaper = asyncio.create_task(reap_rooms())
    yield
    if reaper:
        reaper.cancel()


app = FastAPI(title="watchsync", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

socket_app = socketio.ASGIApp(sio, app)


# REST API
@app.get("/health")
async def health():
    return {"status": "ok", "rooms": len(registry)}

@app.get("/api/room/{room_id}")
async def check_room(room_id: str):
    room = registry.get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    state = protocol.snapshot(room)
    return {"id": room.id, "members": len(room.members), "mediaLabel": room.media_label, **state.to_wire()}


async def dispatch(event: str, sid: str, handler, data: Any):
    try:
        return await handler(sid, data)
    except MalformedPayload as e:
        logger.warning(f"Rejected {event} from {sid}: {e.detail}")
        await sio.emit("error", {"event": event, "message": str(e)}, to=sid)
    except Exception as e:
        logger.error(f"Error in {event}: {e}", exc_info=True)
        await sio.emit("error", {"event": event, "message": "Internal server error"}, to=sid)


# Socket Events
@sio.event
async def connect(sid, environ, auth=None):
    logger.info(f"Client {sid} connected")

@sio.event
async def disconnect(sid, reason=None):
    logger.info(f"Client {sid} disconnected")
    try:
        await protocol.leave(sid)
    except Exception as e:
        logger.error(f"Error in disconnect: {e}", exc_info=True)

@sio.event
async def join(sid, data=None):
    await dispatch("join", sid, protocol.join, data)

@sio.event
async def file_loaded(sid, data=None):
    await dispatch("file_loaded", sid, protocol.file_loaded, data)

@sio.event
async def play(sid, data=None):
    await dispatch("play", sid, protocol.play, data)

@sio.event
async def pause(sid, data=None):
    await dispatch("pause", sid, protocol.pause, data)

@sio.event
async def seek(sid, data=None):
    await dispatch("seek", sid, protocol.seek, data)

@sio.event
async def time_update(sid, data=None):
    await dispatch("time_update", sid, protocol.time_update, data)

@sio.event
async def sync_request(sid, data=None):
    await dispatch("sync_request", sid, protocol.sync_request, data)

@sio.event
async def send_chat(sid, data=None):
    await dispatch("send_chat", sid, protocol.send_chat, data)

@sio.event
async def ping(sid, data=None):
    # Returning acknowledges the probe; the client times the round trip
    return None


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(socket_app, host=settings.host, port=settings.port)
