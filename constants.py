import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Liveness probe period, also the interval and timeout of uvicorn's protocol-level ping
HEARTBEAT_INTERVAL_SECONDS = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", 30))
# When true, a connection that sends nothing at all between two sweeps is evicted.
# Left off, silent peers are only dropped by the transport-level ping run by uvicorn.
HEARTBEAT_REQUIRE_REPLY = os.getenv("HEARTBEAT_REQUIRE_REPLY", "false").lower() in ("1", "true", "yes", "on")

# Per-connection outbound buffer and write bound
SEND_QUEUE_SIZE = int(os.getenv("SEND_QUEUE_SIZE", 64))
SEND_TIMEOUT_SECONDS = float(os.getenv("SEND_TIMEOUT_SECONDS", 10))

# Two-party caller/callee "ready" handshake
READY_HANDSHAKE = os.getenv("READY_HANDSHAKE", "false").lower() in ("1", "true", "yes", "on")

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
