"""Integration test fixtures.

Provides a running matchmaker on a free port, WebSocket client helpers and
an optional Redis URL (TEST_REDIS_URL) for backend tests.
"""

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
import websockets
from websockets.asyncio.client import ClientConnection

from matchmaker.config import HttpConfig, MatchmakerConfig, TransportConfig, WebSocketConfig
from matchmaker.server import MatchmakerServer, build_server
from tests.helpers.fakes import get_free_port

logger = logging.getLogger(__name__)

RECV_TIMEOUT_S = 5.0


# ============================================================================
# Redis
# ============================================================================


@pytest.fixture
def redis_url() -> str:
    """Redis URL for backend integration tests (skips when unset)."""
    url = os.getenv("TEST_REDIS_URL")
    if not url:
        pytest.skip("TEST_REDIS_URL not set")
    return url


# ============================================================================
# Matchmaker Server
# ============================================================================


@pytest_asyncio.fixture
async def matchmaker_server() -> AsyncIterator[MatchmakerServer]:
    """Start a matchmaker with the in-memory backend and no HTTP listener.

    Yields:
        Running server (transport.port is the bound WebSocket port)
    """
    config = MatchmakerConfig(
        transport=TransportConfig(
            websocket=WebSocketConfig(host="127.0.0.1", port=get_free_port(), max_connections=10)
        ),
        http=HttpConfig(enabled=False),
    )

    server = build_server(config)
    await server.start()
    serve_task = asyncio.create_task(server.serve_forever())
    logger.info(f"Matchmaker test server on port {server.transport.port}")

    try:
        yield server
    finally:
        serve_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await serve_task
        await server.stop()


@pytest.fixture
def ws_url(matchmaker_server: MatchmakerServer) -> str:
    """WebSocket URL of the running test server."""
    return f"ws://127.0.0.1:{matchmaker_server.transport.port}"


# ============================================================================
# Client Helpers
# ============================================================================


async def send_event(ws: ClientConnection, event: str, data: Any = None) -> None:
    """Send one named message."""
    await ws.send(json.dumps({"event": event, "data": data}))


async def recv_event(ws: ClientConnection, timeout_s: float = RECV_TIMEOUT_S) -> tuple[str, Any]:
    """Receive one named message.

    Raises:
        asyncio.TimeoutError: If nothing arrives within timeout
    """
    message = json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout_s))
    return message["event"], message["data"]


async def expect_event(ws: ClientConnection, event: str) -> Any:
    """Receive one message and assert its name; return its payload."""
    received, data = await recv_event(ws)
    assert received == event, f"expected {event}, got {received}: {data}"
    return data


@contextlib.asynccontextmanager
async def participant(url: str) -> AsyncIterator[tuple[ClientConnection, str]]:
    """Connect a client and read its assigned id.

    Yields:
        (connection, participant id)
    """
    async with websockets.connect(url) as ws:
        data = await expect_event(ws, "connected")
        yield ws, data["id"]
