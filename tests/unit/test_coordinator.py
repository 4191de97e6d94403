"""Unit tests for the session coordinator.

Drives whole participant conversations through fake sessions: ready,
matching, signaling relay, next and disconnect.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from matchmaker.coordinator import SessionCoordinator
from matchmaker.pairing import PairingEngine
from matchmaker.relay import RelayRouter
from matchmaker.state.base import StateBackendError
from matchmaker.state.memory import InMemoryStateBackend
from tests.helpers.fakes import FakeTransport

ALICE = {"nickname": "Alice", "gender": "female"}
BOB = {"nickname": "Bob", "gender": "male"}


@pytest.mark.asyncio
async def test_alice_waits_then_bob_initiates(
    coordinator: SessionCoordinator, transport: FakeTransport
) -> None:
    """Alice waits alone; Bob arrives, is matched and becomes initiator."""
    transport.connect("alice", "bob")

    await coordinator.dispatch("alice", "ready", ALICE)
    assert transport.event_names_for("alice") == ["waiting"]

    await coordinator.dispatch("bob", "ready", BOB)

    assert transport.events_for("bob") == [
        ("matched", {"partnerId": "alice", "initiator": True, "partnerNickname": "Alice"}),
    ]
    assert transport.events_for("alice")[-1] == (
        "matched",
        {"partnerId": "bob", "initiator": False, "partnerNickname": "Bob"},
    )


@pytest.mark.asyncio
async def test_signaling_round_trip(
    coordinator: SessionCoordinator, transport: FakeTransport
) -> None:
    """Offer, answer and candidates flow between partners with sender ids."""
    transport.connect("alice", "bob")
    await coordinator.dispatch("alice", "ready", ALICE)
    await coordinator.dispatch("bob", "ready", BOB)

    await coordinator.dispatch("bob", "offer", {"target": "alice", "offer": {"sdp": "o"}})
    await coordinator.dispatch("alice", "answer", {"target": "bob", "answer": {"sdp": "a"}})
    await coordinator.dispatch(
        "alice", "candidate", {"target": "bob", "candidate": {"candidate": "c1"}}
    )

    assert transport.events_for("alice")[-1] == (
        "offer",
        {"target": "alice", "offer": {"sdp": "o"}, "from": "bob"},
    )
    assert transport.events_for("bob")[-2:] == [
        ("answer", {"target": "bob", "answer": {"sdp": "a"}, "from": "alice"}),
        ("candidate", {"target": "bob", "candidate": {"candidate": "c1"}, "from": "alice"}),
    ]


@pytest.mark.asyncio
async def test_stored_nickname_is_trimmed(
    coordinator: SessionCoordinator, backend: InMemoryStateBackend, transport: FakeTransport
) -> None:
    transport.connect("alice")

    await coordinator.dispatch("alice", "ready", {"nickname": "  Alice  ", "gender": "female"})

    profile = await backend.get_profile("alice")
    assert profile is not None
    assert profile.nickname == "Alice"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        None,
        "Alice",
        {"gender": "female"},
        {"nickname": "Alice"},
        {"nickname": "   ", "gender": "female"},
        {"nickname": "x" * 51, "gender": "female"},
        {"nickname": 42, "gender": "female"},
    ],
)
async def test_invalid_ready_is_ignored(
    coordinator: SessionCoordinator,
    backend: InMemoryStateBackend,
    transport: FakeTransport,
    payload: object,
) -> None:
    """Rejected profiles change no state and send nothing."""
    transport.connect("alice")

    await coordinator.dispatch("alice", "ready", payload)

    assert await backend.get_profile("alice") is None
    assert await backend.is_waiting("alice") is False
    assert transport.sent == []


@pytest.mark.asyncio
async def test_ready_upserts_profile(
    coordinator: SessionCoordinator, backend: InMemoryStateBackend, transport: FakeTransport
) -> None:
    transport.connect("alice")

    await coordinator.dispatch("alice", "ready", ALICE)
    await coordinator.dispatch("alice", "ready", {"nickname": "Alicia", "gender": "female"})

    profile = await backend.get_profile("alice")
    assert profile is not None
    assert profile.nickname == "Alicia"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("event", "payload"),
    [
        ("offer", {"offer": {"sdp": "o"}}),
        ("offer", {"target": "", "offer": {"sdp": "o"}}),
        ("offer", {"target": "alice"}),
        ("offer", {"target": "alice", "offer": None}),
        ("answer", {"target": "alice", "answer": None}),
        ("candidate", {"target": "alice"}),
        ("reaction", {"emoji": "👍"}),
        ("reaction", None),
    ],
)
async def test_invalid_relay_messages_are_dropped(
    coordinator: SessionCoordinator,
    transport: FakeTransport,
    event: str,
    payload: object,
) -> None:
    transport.connect("alice", "bob")
    await coordinator.dispatch("alice", "ready", ALICE)
    await coordinator.dispatch("bob", "ready", BOB)
    sent_before = len(transport.sent)

    await coordinator.dispatch("bob", event, payload)

    assert len(transport.sent) == sent_before


@pytest.mark.asyncio
async def test_reaction_is_relayed(
    coordinator: SessionCoordinator, transport: FakeTransport
) -> None:
    transport.connect("alice", "bob")
    await coordinator.dispatch("alice", "ready", ALICE)
    await coordinator.dispatch("bob", "ready", BOB)

    await coordinator.dispatch("alice", "reaction", {"target": "bob", "emoji": "🎉"})

    assert transport.events_for("bob")[-1] == (
        "reaction",
        {"target": "bob", "emoji": "🎉", "from": "alice"},
    )


@pytest.mark.asyncio
async def test_get_partner_info(
    coordinator: SessionCoordinator, transport: FakeTransport
) -> None:
    transport.connect("alice", "bob")
    await coordinator.dispatch("alice", "ready", ALICE)
    await coordinator.dispatch("bob", "ready", BOB)

    await coordinator.dispatch("bob", "getPartnerInfo", {"partnerId": "alice"})

    assert transport.events_for("bob")[-1] == (
        "partnerInfo",
        {"nickname": "Alice", "gender": "female"},
    )


@pytest.mark.asyncio
async def test_get_partner_info_requires_partner_id(
    coordinator: SessionCoordinator, transport: FakeTransport
) -> None:
    transport.connect("alice")

    await coordinator.dispatch("alice", "getPartnerInfo", {})

    assert transport.sent == []


@pytest.mark.asyncio
async def test_unknown_event_is_ignored(
    coordinator: SessionCoordinator, transport: FakeTransport
) -> None:
    transport.connect("alice")

    await coordinator.dispatch("alice", "teleport", {"to": "mars"})

    assert transport.sent == []


@pytest.mark.asyncio
async def test_next_unpairs_without_requeue(
    coordinator: SessionCoordinator, backend: InMemoryStateBackend, transport: FakeTransport
) -> None:
    """"next" notifies the partner and leaves both sides unpaired."""
    transport.connect("alice", "bob")
    await coordinator.dispatch("alice", "ready", ALICE)
    await coordinator.dispatch("bob", "ready", BOB)

    await coordinator.dispatch("bob", "next", None)

    assert transport.event_names_for("alice")[-1] == "partnerDisconnected"
    assert transport.event_names_for("bob")[-1] == "waiting"
    assert await backend.get_partner("alice") is None
    assert await backend.get_partner("bob") is None
    assert await backend.waiting_count() == 0

    # Fresh "ready" from both pairs them again
    await coordinator.dispatch("bob", "ready", BOB)
    await coordinator.dispatch("alice", "ready", ALICE)
    assert await backend.get_partner("alice") == "bob"


@pytest.mark.asyncio
async def test_handler_error_keeps_connection(transport: FakeTransport) -> None:
    """Unexpected handler errors are logged and swallowed."""
    transport.connect("alice")
    engine = AsyncMock(spec=PairingEngine)
    engine.enqueue_or_match.side_effect = RuntimeError("boom")
    backend = InMemoryStateBackend()
    coordinator = SessionCoordinator(
        backend, transport, engine, RelayRouter(backend, transport)
    )

    await coordinator.dispatch("alice", "ready", ALICE)

    engine.enqueue_or_match.assert_awaited_once_with("alice")


@pytest.mark.asyncio
async def test_profile_write_failure_still_matches(transport: FakeTransport) -> None:
    transport.connect("alice")
    backend = AsyncMock()
    backend.set_profile.side_effect = StateBackendError("down")
    engine = AsyncMock(spec=PairingEngine)
    coordinator = SessionCoordinator(backend, transport, engine, RelayRouter(backend, transport))

    await coordinator.dispatch("alice", "ready", ALICE)

    engine.enqueue_or_match.assert_awaited_once_with("alice")


class TestSessionLifecycle:
    """Test full sessions through handle_session."""

    @pytest.mark.asyncio
    async def test_disconnect_notifies_partner(
        self,
        coordinator: SessionCoordinator,
        backend: InMemoryStateBackend,
        transport: FakeTransport,
    ) -> None:
        alice = transport.open_session("alice")
        bob = transport.open_session("bob")
        alice_task = asyncio.create_task(coordinator.handle_session(alice))
        bob_task = asyncio.create_task(coordinator.handle_session(bob))

        alice.feed("ready", ALICE)
        await asyncio.sleep(0)
        bob.feed("ready", BOB)
        for _ in range(10):
            await asyncio.sleep(0)

        assert await backend.get_partner("alice") == "bob"

        alice.hang_up()
        await alice_task

        assert transport.event_names_for("bob")[-1] == "partnerDisconnected"
        assert await backend.get_partner("bob") is None
        assert await backend.is_waiting("bob") is False

        bob.hang_up()
        await bob_task

        assert transport.event_names_for("bob").count("partnerDisconnected") == 1

    @pytest.mark.asyncio
    async def test_waiting_participant_leaves_pool(
        self,
        coordinator: SessionCoordinator,
        backend: InMemoryStateBackend,
        transport: FakeTransport,
    ) -> None:
        alice = transport.open_session("alice")
        task = asyncio.create_task(coordinator.handle_session(alice))

        alice.feed("ready", ALICE)
        for _ in range(5):
            await asyncio.sleep(0)
        assert await backend.is_waiting("alice") is True

        alice.hang_up()
        await task

        assert await backend.is_waiting("alice") is False
        # Profile is kept for late partnerInfo reads
        assert await backend.get_profile("alice") is not None

    @pytest.mark.asyncio
    async def test_profile_deleted_on_disconnect_when_configured(
        self, backend: InMemoryStateBackend, transport: FakeTransport
    ) -> None:
        engine = PairingEngine(backend, transport)
        coordinator = SessionCoordinator(
            backend,
            transport,
            engine,
            RelayRouter(backend, transport),
            delete_profile_on_disconnect=True,
        )
        alice = transport.open_session("alice")
        task = asyncio.create_task(coordinator.handle_session(alice))

        alice.feed("ready", ALICE)
        alice.hang_up()
        await task

        assert await backend.get_profile("alice") is None
