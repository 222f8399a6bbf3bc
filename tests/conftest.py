"""
Shared fixtures for the chat core tests.

FakeWebSocket stands in for a FastAPI WebSocket and records every frame the
gateway sends to it.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from chat.hub import ChatHub
from common.config import ChatConfig, Config, PermissionsConfig
from common.models import Identity, Role


class FakeWebSocket:
    """Records sent frames as decoded JSON."""

    def __init__(self) -> None:
        self.frames: List[Dict[str, Any]] = []
        self.fail_sends = False

    async def send_text(self, text: str) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is closed")
        self.frames.append(json.loads(text))

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Frames with the given event name (all frames when name is None)."""
        return [f for f in self.frames if name is None or f["event"] == name]

    def data(self, name: str) -> List[Dict[str, Any]]:
        return [f["data"] for f in self.events(name)]

    def clear(self) -> None:
        self.frames.clear()


U1 = Identity(id="u1", email="parent1@example.com", role=Role.CUSTOMER)
U2 = Identity(id="u2", email="parent2@example.com", role=Role.CUSTOMER)
U3 = Identity(id="u3", email="outsider@example.com", role=Role.CUSTOMER)
COACH = Identity(id="coach1", email="coach@example.com", role=Role.COACH)
ADMIN = Identity(id="admin1", email="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def test_config() -> Config:
    """Configuration with short timers and one batch."""
    return Config(
        chat=ChatConfig(typing_timeout=0.05, presence_debounce=0.05),
        permissions=PermissionsConfig(batch_members={"42": ["u1", "u2", "coach1"]}),
    )


@pytest_asyncio.fixture
async def hub(test_config: Config):
    """A chat hub with an in-memory store."""
    chat_hub = ChatHub(test_config)
    yield chat_hub
    chat_hub.shutdown()


async def connect(hub: ChatHub, identity: Identity) -> Tuple[str, FakeWebSocket]:
    """Register a fake socket for an identity."""
    websocket = FakeWebSocket()
    connection_id = await hub.connect(websocket, identity)
    return connection_id, websocket
