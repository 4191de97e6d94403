"""End-to-End WebSocket Flow Integration Test.

Tests the complete participant flow against a real server:
1. Connect and receive the assigned id
2. "ready" while alone → "waiting"
3. Second participant → both "matched", later arrival is initiator
4. Offer/answer/candidate relayed with the sender id
5. Partner disconnect / "next" → "partnerDisconnected", no requeue
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

import pytest
import websockets

from matchmaker.server import MatchmakerServer
from tests.integration.conftest import (
    expect_event,
    participant,
    recv_event,
    send_event,
)

logger = logging.getLogger(__name__)

ALICE = {"nickname": "Alice", "gender": "female"}
BOB = {"nickname": "Bob", "gender": "male"}


async def wait_until(condition: Callable[[], Awaitable[bool]], timeout_s: float = 5.0) -> None:
    """Poll an async condition until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout_s
    while not await condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_connected_event_assigns_id(ws_url: str) -> None:
    async with participant(ws_url) as (_, participant_id):
        assert participant_id.startswith("ws-")
        assert len(participant_id) == len("ws-") + 12


@pytest.mark.asyncio
async def test_pair_and_signal(ws_url: str) -> None:
    """Alice waits, Bob matches as initiator and the handshake is relayed."""
    async with participant(ws_url) as (alice, alice_id), participant(ws_url) as (bob, bob_id):
        await send_event(alice, "ready", ALICE)
        await expect_event(alice, "waiting")

        await send_event(bob, "ready", BOB)
        bob_match = await expect_event(bob, "matched")
        alice_match = await expect_event(alice, "matched")

        assert bob_match == {"partnerId": alice_id, "initiator": True, "partnerNickname": "Alice"}
        assert alice_match == {"partnerId": bob_id, "initiator": False, "partnerNickname": "Bob"}

        await send_event(bob, "offer", {"target": alice_id, "offer": {"type": "offer"}})
        offer = await expect_event(alice, "offer")
        assert offer["from"] == bob_id
        assert offer["offer"] == {"type": "offer"}

        await send_event(alice, "answer", {"target": bob_id, "answer": {"type": "answer"}})
        answer = await expect_event(bob, "answer")
        assert answer["from"] == alice_id

        await send_event(alice, "candidate", {"target": bob_id, "candidate": {"c": 1}})
        candidate = await expect_event(bob, "candidate")
        assert candidate == {"target": bob_id, "candidate": {"c": 1}, "from": alice_id}

        await send_event(bob, "getPartnerInfo", {"partnerId": alice_id})
        assert await expect_event(bob, "partnerInfo") == ALICE


@pytest.mark.asyncio
async def test_partner_disconnect_notifies_once(
    ws_url: str, matchmaker_server: MatchmakerServer
) -> None:
    backend = matchmaker_server.backend

    async with participant(ws_url) as (bob, bob_id):
        async with participant(ws_url) as (alice, _):
            await send_event(alice, "ready", ALICE)
            await expect_event(alice, "waiting")
            await send_event(bob, "ready", BOB)
            await expect_event(bob, "matched")
            await expect_event(alice, "matched")

        await expect_event(bob, "partnerDisconnected")

        async def bob_unpaired() -> bool:
            return await backend.get_partner(bob_id) is None

        await wait_until(bob_unpaired)
        assert await backend.is_waiting(bob_id) is False

        # No second notification and no automatic rematch
        with pytest.raises(asyncio.TimeoutError):
            await recv_event(bob, timeout_s=0.3)


@pytest.mark.asyncio
async def test_next_and_rematch(ws_url: str) -> None:
    async with participant(ws_url) as (alice, alice_id), participant(ws_url) as (bob, bob_id):
        await send_event(alice, "ready", ALICE)
        await expect_event(alice, "waiting")
        await send_event(bob, "ready", BOB)
        await expect_event(bob, "matched")
        await expect_event(alice, "matched")

        await send_event(alice, "next")
        await expect_event(alice, "waiting")
        await expect_event(bob, "partnerDisconnected")

        # Relays after the split go nowhere
        await send_event(bob, "offer", {"target": alice_id, "offer": {}})

        await send_event(bob, "ready", BOB)
        await expect_event(bob, "waiting")
        await send_event(alice, "ready", ALICE)
        match = await expect_event(alice, "matched")
        assert match["partnerId"] == bob_id
        assert match["initiator"] is True


@pytest.mark.asyncio
async def test_malformed_frames_get_error(ws_url: str) -> None:
    async with participant(ws_url) as (ws, _):
        await ws.send("not json")
        error = await expect_event(ws, "error")
        assert error["code"] == "INVALID_FRAME"

        await ws.send(json.dumps({"data": {}}))
        await expect_event(ws, "error")

        # The connection stays usable
        await send_event(ws, "ready", ALICE)
        await expect_event(ws, "waiting")


@pytest.mark.asyncio
async def test_invalid_ready_is_silent(ws_url: str) -> None:
    async with participant(ws_url) as (ws, _):
        await send_event(ws, "ready", {"nickname": "", "gender": "x"})

        with pytest.raises(asyncio.TimeoutError):
            await recv_event(ws, timeout_s=0.3)


@pytest.mark.asyncio
async def test_connection_limit(matchmaker_server: MatchmakerServer, ws_url: str) -> None:
    """Connections past max_connections are closed with 1013."""
    matchmaker_server.transport._max_connections = 1

    async with participant(ws_url):
        async with websockets.connect(ws_url) as extra:
            with pytest.raises(websockets.exceptions.ConnectionClosed) as exc_info:
                await asyncio.wait_for(extra.recv(), timeout=5.0)

    assert exc_info.value.rcvd is not None
    assert exc_info.value.rcvd.code == 1013
