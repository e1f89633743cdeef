"""
Message router for the signaling protocol.

Each connection moves UNJOINED -> JOINED -> CLOSED. Inbound envelopes are
handled synchronously against the room registry, one envelope at a time, and
outbound frames are only ever queued on the recipients' connections, so a
handler never waits on another peer's socket.

Negotiation messages (offer/answer/ice) carrying a ``target`` are unicast to
that member, anything else is broadcast to the rest of the room. In both cases
``from`` is overwritten with the sender's user id.
"""
import asyncio
import json
from typing import Dict, Optional, Set, Union

from fastapi import WebSocket
from pydantic import ValidationError as PydanticValidationError

from connection import Connection
from constants import READY_HANDSHAKE, SEND_QUEUE_SIZE, SEND_TIMEOUT_SECONDS
from exceptions import DeliveryFailure, ProtocolError, TransportFault, ValidationError
from logging_config import get_logger
from registry import RoomRegistry
from schemas.envelopes import NEGOTIATION_TYPES, Envelope, MessageType

logger = get_logger(__name__)

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011
CLOSE_TRY_AGAIN_LATER = 1013


class MessageRouter:
    def __init__(
        self,
        registry: RoomRegistry,
        ready_handshake: bool = READY_HANDSHAKE,
        queue_size: int = SEND_QUEUE_SIZE,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
    ):
        self.registry = registry
        self.ready_handshake = ready_handshake
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        # every open connection, joined or not; the liveness monitor walks this
        self.connections: Dict[str, Connection] = {}
        self._shutdowns: Set[asyncio.Task] = set()

    def open(self, websocket: WebSocket) -> Connection:
        """Track an accepted WebSocket. Must be called from the event loop."""
        conn = Connection(
            websocket,
            on_fault=self._on_transport_fault,
            queue_size=self.queue_size,
            send_timeout=self.send_timeout,
        )
        self.connections[conn.connection_id] = conn
        conn.start()
        logger.info(f"Connection {conn.connection_id[:8]} opened ({len(self.connections)} open)")
        return conn

    def handle_message(self, conn: Connection, raw: Union[str, bytes]) -> None:
        """Process one inbound frame. Validation and protocol errors go back to the sender."""
        if conn.closed:
            return
        conn.touch()
        # any inbound frame proves the peer is there, not only a pong
        conn.mark_alive()
        try:
            envelope = self.parse(raw)
            logger.debug(f"Received {envelope.type} from {conn!r}")
            self._dispatch(conn, envelope)
        except (ValidationError, ProtocolError) as e:
            logger.info(f"Rejected message from {conn!r}: {e.message}")
            self.send(conn, {"type": MessageType.ERROR.value, "message": e.message})

    @staticmethod
    def parse(raw: Union[str, bytes]) -> Envelope:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
            raise ValidationError("Invalid message format")
        if not isinstance(data, dict):
            raise ValidationError("Invalid message format")
        if not isinstance(data.get("type"), str) or not data["type"]:
            raise ValidationError("Missing message type")
        # the server stamps "from" itself, whatever the client put there is dropped unread
        data.pop("from", None)
        try:
            return Envelope.model_validate(data)
        except PydanticValidationError as e:
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
            raise ValidationError(f"Malformed {data['type']} message: invalid {fields}")

    def _dispatch(self, conn: Connection, envelope: Envelope) -> None:
        try:
            message_type = MessageType(envelope.type)
        except ValueError:
            raise ValidationError(f"Unknown message type: {envelope.type}")

        if message_type == MessageType.JOIN:
            self.join(conn, envelope.roomId, envelope.userId)
        elif message_type in NEGOTIATION_TYPES:
            self.relay(conn, envelope)
        elif message_type == MessageType.LEAVE:
            self.leave(conn)
        elif message_type == MessageType.PONG:
            # liveness was already recorded by handle_message
            pass
        elif message_type == MessageType.PING:
            self.send(conn, {"type": MessageType.PONG.value})
        else:
            # server-to-client types are not accepted from clients
            raise ValidationError(f"Unknown message type: {envelope.type}")

    def join(self, conn: Connection, room_id: Optional[str], user_id: Optional[str]) -> None:
        if not room_id or not user_id:
            raise ValidationError("Missing roomId or userId")

        if conn.room_id is not None:
            self.leave(conn)

        existing = [uid for uid, _ in self.registry.members_of(room_id, exclude=user_id)]
        superseded = self.registry.add_member(room_id, user_id, conn)
        conn.set_identity(room_id, user_id)
        if superseded is not None:
            # the old socket stays open but no longer speaks for this user
            superseded.clear_identity()

        logger.info(f"{user_id} joined {room_id} ({self.registry.member_count(room_id)} users)")

        self.send(conn, {"type": MessageType.EXISTING_USERS.value, "users": existing})
        self._broadcast(room_id, {"type": MessageType.USER_JOINED.value, "userId": user_id}, exclude=user_id)

        if self.ready_handshake and superseded is None and self.registry.member_count(room_id) == 2:
            self._announce_ready(room_id)

    def _announce_ready(self, room_id: str) -> None:
        (caller_id, caller), (callee_id, callee) = self.registry.members_of(room_id)
        logger.info(f"Room {room_id} ready: caller={caller_id} callee={callee_id}")
        self.send(caller, {"type": MessageType.READY.value, "role": "caller"})
        self.send(callee, {"type": MessageType.READY.value, "role": "callee"})

    def relay(self, conn: Connection, envelope: Envelope) -> None:
        if conn.room_id is None or conn.user_id is None:
            raise ProtocolError("Not joined to a room")
        if envelope.payload is None:
            raise ValidationError(f"Missing payload for {envelope.type}")

        message = envelope.relayed_from(conn.user_id)
        if envelope.target is None:
            delivered = self._broadcast(conn.room_id, message, exclude=conn.user_id)
            logger.debug(f"Relayed {envelope.type} from {conn.user_id} to {delivered} peers in {conn.room_id}")
            return

        recipient = None
        if envelope.target != conn.user_id:
            recipient = self.registry.get_member(conn.room_id, envelope.target)
        if recipient is None:
            # negotiation races with departures; a vanished target is not an error
            logger.debug(f"Dropped {envelope.type} from {conn.user_id} to absent {envelope.target} in {conn.room_id}")
            return
        self.send(recipient, message)

    def leave(self, conn: Connection) -> bool:
        """Take ``conn`` out of its room. No-op when it is not in one."""
        if conn.room_id is None or conn.user_id is None:
            return False
        room_id, user_id = conn.room_id, conn.user_id
        conn.clear_identity()
        if self.registry.get_member(room_id, user_id) is not conn:
            return False

        deleted = self.registry.remove_member(room_id, user_id, conn)
        logger.info(f"{user_id} left {room_id}")
        if not deleted:
            self._broadcast(room_id, {"type": MessageType.USER_LEFT.value, "userId": user_id})
        return True

    def _teardown(self, conn: Connection, reason: str) -> bool:
        if conn.closed:
            return False
        conn.closed = True
        self.connections.pop(conn.connection_id, None)
        self.leave(conn)
        logger.info(f"Connection {conn.connection_id[:8]} closed: {reason} ({len(self.connections)} open)")
        return True

    async def disconnect(self, conn: Connection, reason: str = "connection closed", code: int = CLOSE_NORMAL) -> bool:
        """Single cleanup path for close, transport faults, failed delivery and eviction.

        Only the first call for a given connection does anything; later calls return False.
        """
        if not self._teardown(conn, reason):
            return False
        await conn.shutdown(code=code, reason=reason)
        return True

    def _schedule_disconnect(self, conn: Connection, reason: str, code: int) -> None:
        # membership is dropped immediately, only the socket close is deferred
        if not self._teardown(conn, reason):
            return
        task = asyncio.get_running_loop().create_task(conn.shutdown(code=code, reason=reason))
        self._shutdowns.add(task)
        task.add_done_callback(self._shutdowns.discard)

    def _on_transport_fault(self, conn: Connection, fault: TransportFault) -> None:
        self._schedule_disconnect(conn, fault.message, CLOSE_INTERNAL_ERROR)

    def send(self, conn: Connection, message: dict) -> bool:
        try:
            conn.deliver(message)
        except DeliveryFailure as e:
            if conn.closed:
                logger.debug(f"Dropped {message.get('type')} for closed connection {conn.connection_id[:8]}")
            else:
                logger.warning(f"Dropped {message.get('type')} for {conn!r}: {e.message}")
                self._schedule_disconnect(conn, "outbound queue overflow", CLOSE_TRY_AGAIN_LATER)
            return False
        return True

    def _broadcast(self, room_id: str, message: dict, exclude: Optional[str] = None) -> int:
        delivered = 0
        for _, member in self.registry.members_of(room_id, exclude=exclude):
            if self.send(member, message):
                delivered += 1
        return delivered

    async def close_all(self, reason: str = "server shutdown") -> None:
        """Disconnect everyone, letting each peer's queued frames go out before the close."""
        conns = list(self.connections.values())
        for conn in conns:
            self._teardown(conn, reason)
        await asyncio.gather(
            *(conn.shutdown(code=CLOSE_GOING_AWAY, reason=reason, drain=True) for conn in conns),
            *self._shutdowns,
            return_exceptions=True,
        )
