from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from liveness import LivenessMonitor
from logging_config import get_logger, setup_logging
from registry import room_registry
from routers.rooms import rooms_router
from signaling import MessageRouter

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

message_router = MessageRouter(room_registry)
liveness_monitor = LivenessMonitor(message_router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    liveness_monitor.start()
    yield
    await liveness_monitor.stop()
    await message_router.close_all()


app = FastAPI(title="SignalRelay", description="WebRTC signaling relay", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/")
async def health_check():
    return {
        "status": "ok",
        "rooms": len(room_registry),
        "connections": len(message_router.connections),
    }


async def websocket_endpoint(websocket: WebSocket):
    """Signaling channel. The client joins a room by sending a ``join`` envelope.

    Frames are handled strictly in arrival order. Whatever ends the loop (client
    close, transport error, or the server closing the socket after eviction), the
    connection goes through ``MessageRouter.disconnect`` exactly once.
    """
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    await websocket.accept()
    conn = message_router.open(websocket)
    logger.info(f"WebSocket connection {conn.connection_id[:8]} accepted from {client}")

    reason = "connection closed"
    try:
        while not conn.closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                reason = f"client disconnected (code {message.get('code', 1000)})"
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            message_router.handle_message(conn, raw)
    except Exception as e:
        logger.error(f"WebSocket error for connection {conn.connection_id[:8]} from {client}: {e}", exc_info=True)
        reason = f"transport fault: {e!r}"
    finally:
        await message_router.disconnect(conn, reason)


# bare-URL clients connect to "/", everything else to "/ws"
app.add_api_websocket_route("/ws", websocket_endpoint)
app.add_api_websocket_route("/", websocket_endpoint)
