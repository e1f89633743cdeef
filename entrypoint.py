import uvicorn

from constants import HEARTBEAT_INTERVAL_SECONDS, HOST, LOG_FILE, LOG_LEVEL, PORT
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app  # noqa: E402
from logging_config import get_logger  # noqa: E402

logger = get_logger(__name__)


def main() -> None:
    logger.info(f"Starting SignalRelay signaling server on {HOST}:{PORT}")
    # browsers answer protocol pings on their own, so idle peers stay connected
    # and dead ones are closed by uvicorn, which ends their receive loop
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        log_config=None,
        ws_ping_interval=HEARTBEAT_INTERVAL_SECONDS,
        ws_ping_timeout=HEARTBEAT_INTERVAL_SECONDS,
    )


if __name__ == "__main__":
    main()
