"""Shared test fixtures.

Wires the pairing engine, relay router and coordinator over the in-memory
backend and the fake transport from tests.helpers.fakes.
"""

import pytest

from matchmaker.coordinator import SessionCoordinator
from matchmaker.pairing import PairingEngine
from matchmaker.relay import RelayRouter
from matchmaker.state.memory import InMemoryStateBackend
from tests.helpers.fakes import FakeTransport


@pytest.fixture
def backend() -> InMemoryStateBackend:
    """Fresh in-memory backend."""
    return InMemoryStateBackend()


@pytest.fixture
def transport() -> FakeTransport:
    """Fresh fake transport."""
    return FakeTransport()


@pytest.fixture
def engine(backend: InMemoryStateBackend, transport: FakeTransport) -> PairingEngine:
    """Pairing engine over the in-memory backend."""
    return PairingEngine(backend, transport, max_match_attempts=5)


@pytest.fixture
def router(backend: InMemoryStateBackend, transport: FakeTransport) -> RelayRouter:
    """Relay router over the in-memory backend."""
    return RelayRouter(backend, transport)


@pytest.fixture
def coordinator(
    backend: InMemoryStateBackend,
    transport: FakeTransport,
    engine: PairingEngine,
    router: RelayRouter,
) -> SessionCoordinator:
    """Coordinator wired to the fixtures above."""
    return SessionCoordinator(backend, transport, engine, router)
