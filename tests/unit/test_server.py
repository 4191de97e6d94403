"""Unit tests for server wiring and lifecycle."""

import aiohttp
import pytest

from matchmaker.config import HttpConfig, MatchmakerConfig, PairingConfig
from matchmaker.server import build_server
from matchmaker.state.memory import InMemoryStateBackend
from matchmaker.transport.websocket_transport import WebSocketTransport
from tests.helpers.fakes import get_free_port


def test_build_server_wiring() -> None:
    config = MatchmakerConfig(
        pairing=PairingConfig(max_match_attempts=7, delete_profile_on_disconnect=True)
    )

    server = build_server(config)

    assert isinstance(server.backend, InMemoryStateBackend)
    assert isinstance(server.transport, WebSocketTransport)
    assert server.coordinator.engine.max_match_attempts == 7
    assert server.coordinator.delete_profile_on_disconnect is True
    assert server.coordinator.router.backend is server.backend


@pytest.mark.asyncio
async def test_start_and_stop_with_http() -> None:
    """Both listeners come up and /liveness answers."""
    http_port = get_free_port()
    config = MatchmakerConfig.model_validate(
        {
            "transport": {"websocket": {"host": "127.0.0.1", "port": get_free_port()}},
            "http": HttpConfig(host="127.0.0.1", port=http_port).model_dump(),
        }
    )
    server = build_server(config)

    await server.start()
    try:
        assert server.transport.is_running is True
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://127.0.0.1:{http_port}/liveness") as resp:
                assert resp.status == 200
    finally:
        await server.stop()

    assert server.transport.is_running is False
    assert server.runner is None
