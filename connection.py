import asyncio
import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from fastapi import WebSocket

from constants import SEND_QUEUE_SIZE, SEND_TIMEOUT_SECONDS
from exceptions import DeliveryFailure, TransportFault
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class Connection:
    """One accepted WebSocket plus the identity and liveness state that goes with it.

    Outbound frames are never written by the caller directly: ``deliver`` puts them
    on a bounded queue and a per-connection writer task sends them, so a slow peer
    only ever stalls its own writer.
    """

    def __init__(
        self,
        websocket: WebSocket,
        on_fault: Optional[Callable[["Connection", TransportFault], None]] = None,
        queue_size: int = SEND_QUEUE_SIZE,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
    ):
        self.connection_id = uuid.uuid4().hex
        self.websocket = websocket
        self.room_id: Optional[str] = None
        self.user_id: Optional[str] = None
        self.is_alive = True
        self.closed = False
        self.connected_at = datetime.now()
        self.last_activity = self.connected_at
        self.send_timeout = send_timeout
        self._on_fault = on_fault
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer_task: Optional[asyncio.Task] = None
        self._stopping = False

    def __repr__(self) -> str:
        return f"<Connection {self.connection_id[:8]} room={self.room_id} user={self.user_id} {self.state.value}>"

    @property
    def state(self) -> ConnectionState:
        if self.closed:
            return ConnectionState.CLOSED
        if self.room_id is not None and self.user_id is not None:
            return ConnectionState.JOINED
        return ConnectionState.UNJOINED

    def start(self) -> None:
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(self._write_loop())

    def touch(self) -> None:
        self.last_activity = datetime.now()

    def mark_alive(self) -> None:
        self.is_alive = True

    def set_identity(self, room_id: str, user_id: str) -> None:
        self.room_id = room_id
        self.user_id = user_id

    def clear_identity(self) -> None:
        self.room_id = None
        self.user_id = None

    def deliver(self, message: dict) -> None:
        """Queue ``message`` for sending without waiting on the socket."""
        if self.closed:
            raise DeliveryFailure(f"connection {self.connection_id[:8]} is closed")
        try:
            self._outbox.put_nowait(json.dumps(message))
        except asyncio.QueueFull:
            raise DeliveryFailure(
                f"outbound queue full for connection {self.connection_id[:8]} ({self._outbox.maxsize} frames)"
            )

    async def _write_loop(self) -> None:
        # a cancel swallowed inside wait_for must still end the loop once shutdown starts
        while not self._stopping:
            text = await self._outbox.get()
            try:
                await asyncio.wait_for(self.websocket.send_text(text), timeout=self.send_timeout)
            except Exception as e:
                fault = TransportFault(f"send failed: {e!r}")
                logger.warning(f"Write to connection {self.connection_id[:8]} failed: {e!r}")
                self._discard_pending()
                if self._on_fault is not None:
                    self._on_fault(self, fault)
                return
            finally:
                self._outbox.task_done()

    def _discard_pending(self) -> None:
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()

    async def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued frame has been handed to the socket."""
        if self._writer_task is None or self._writer_task.done():
            return self._outbox.empty()
        try:
            await asyncio.wait_for(self._outbox.join(), timeout=timeout or self.send_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def shutdown(self, code: int = 1000, reason: str = "", drain: bool = False) -> None:
        """Stop the writer and close the socket. Close errors are logged, not raised.

        With ``drain`` the frames already queued are written first, bounded by the
        send timeout. Every wait here is bounded, so a stuck peer cannot hold up
        the caller for longer than a couple of send timeouts.
        """
        self.closed = True
        if drain and not await self.flush():
            logger.debug(f"Connection {self.connection_id[:8]} closed with frames still queued")
        self._stopping = True
        task = self._writer_task
        if task is not None and not task.done():
            task.cancel()
            done, _ = await asyncio.wait({task}, timeout=self.send_timeout)
            if not done:
                logger.warning(f"Writer for connection {self.connection_id[:8]} did not stop after cancel")
        self._discard_pending()
        try:
            await asyncio.wait_for(self.websocket.close(code=code, reason=reason), timeout=self.send_timeout)
        except Exception as e:
            logger.debug(f"Error closing WebSocket {self.connection_id[:8]}: {e!r}")
