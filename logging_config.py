import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(log_level: Union[str, int] = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger with a stdout handler and an optional file handler.

    Safe to call more than once: handlers installed by a previous call are replaced.
    """
    if isinstance(log_level, str):
        level = logging.getLevelName(log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    else:
        level = log_level

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_signalrelay", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    stream_handler._signalrelay = True
    root.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler._signalrelay = True
        root.addHandler(file_handler)

    root.setLevel(level)
    # uvicorn's access log is noisy for a WebSocket-only service
    logging.getLogger("uvicorn.access").setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
