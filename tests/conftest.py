from __future__ import annotations

import pytest

from registry import RoomRegistry
from signaling import MessageRouter


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def router(registry: RoomRegistry) -> MessageRouter:
    return MessageRouter(registry, ready_handshake=False, queue_size=16, send_timeout=1)
