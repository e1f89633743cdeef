from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class MessageType(str, Enum):
    JOIN = "join"
    EXISTING_USERS = "existing-users"
    USER_JOINED = "user-joined"
    OFFER = "offer"
    ANSWER = "answer"
    ICE = "ice"
    LEAVE = "leave"
    USER_LEFT = "user-left"
    ERROR = "error"
    READY = "ready"
    PING = "ping"
    PONG = "pong"


NEGOTIATION_TYPES = frozenset({MessageType.OFFER, MessageType.ANSWER, MessageType.ICE})


class Envelope(BaseModel):
    """Inbound wire message. Unknown fields are kept and relayed as-is, except ``from``."""

    model_config = ConfigDict(extra="allow")

    type: str
    roomId: Optional[str] = None
    userId: Optional[str] = None
    target: Optional[str] = None
    payload: Any = None

    def relayed_from(self, user_id: str) -> dict:
        """Copy of this envelope for forwarding, with ``from`` stamped by the server."""
        message = self.model_dump(exclude_none=True)
        message["from"] = user_id
        return message
