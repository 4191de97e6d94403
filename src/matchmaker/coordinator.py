"""Session coordinator.

Binds the transport lifecycle of one participant connection (inbound named
messages, then disconnect) to pairing engine and relay router calls.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from matchmaker.models import Profile
from matchmaker.pairing import PairingEngine
from matchmaker.relay import RelayRouter
from matchmaker.state.base import StateBackend, StateBackendError
from matchmaker.transport.base import Transport, TransportSession
from matchmaker.transport.websocket_protocol import (
    EVENT_GET_PARTNER_INFO,
    EVENT_NEXT,
    EVENT_READY,
    EVENT_WAITING,
    RELAY_MODELS,
    GetPartnerInfoMessage,
    ReadyMessage,
)

logger = logging.getLogger(__name__)

Handler = Callable[[str, str, Any], Awaitable[None]]


class SessionCoordinator:
    """Dispatches participant messages to the pairing core.

    Messages of one connection are handled in arrival order, one at a time;
    different connections are handled concurrently by separate tasks.
    """

    def __init__(
        self,
        backend: StateBackend,
        transport: Transport,
        engine: PairingEngine,
        router: RelayRouter,
        delete_profile_on_disconnect: bool = False,
    ) -> None:
        """Initialize coordinator.

        Args:
            backend: Pairing state storage (for profile writes)
            transport: Transport used to answer "next"
            engine: Pairing engine
            router: Relay router
            delete_profile_on_disconnect: Delete profiles on disconnect instead
                of keeping them for late partnerInfo reads
        """
        self.backend = backend
        self.transport = transport
        self.engine = engine
        self.router = router
        self.delete_profile_on_disconnect = delete_profile_on_disconnect

        self._handlers: dict[str, Handler] = {
            EVENT_READY: self.on_ready,
            EVENT_GET_PARTNER_INFO: self.on_get_partner_info,
            EVENT_NEXT: self.on_next,
        }
        for event in RELAY_MODELS:
            self._handlers[event] = self.on_relay

    async def handle_session(self, session: TransportSession) -> None:
        """Process one connection until it disconnects.

        Teardown runs exactly once per connection, after the inbound stream
        ends, whatever the reason it ended.

        Args:
            session: Transport session for the participant
        """
        participant_id = session.session_id
        logger.info("Participant connected", extra={"participant_id": participant_id})

        try:
            async for event, payload in session.receive_events():
                await self.dispatch(participant_id, event, payload)
        except ConnectionError as e:
            logger.warning(
                "Connection error while receiving",
                extra={"participant_id": participant_id, "error": str(e)},
            )
        finally:
            await self.on_disconnect(participant_id)

    async def dispatch(self, participant_id: str, event: str, payload: Any) -> None:
        """Route one inbound message to its handler.

        Unexpected errors are logged and swallowed so the connection stays
        open; the participant keeps its current state.

        Args:
            participant_id: Sender
            event: Event name
            payload: Raw payload from the transport
        """
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(
                "Unknown event, ignoring",
                extra={"participant_id": participant_id, "event": event},
            )
            return

        try:
            await handler(participant_id, event, payload)
        except Exception:
            logger.exception(
                "Error handling event",
                extra={"participant_id": participant_id, "event": event},
            )

    async def on_ready(self, participant_id: str, event: str, payload: Any) -> None:
        """Store the participant's profile and try to match it."""
        try:
            message = ReadyMessage.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "Invalid profile data received",
                extra={"participant_id": participant_id, "error": str(e)},
            )
            return

        profile = Profile(nickname=message.nickname, gender=message.gender)
        logger.info(
            "Participant ready",
            extra={
                "participant_id": participant_id,
                "nickname": profile.nickname,
                "gender": profile.gender,
            },
        )

        try:
            await self.backend.set_profile(participant_id, profile)
        except StateBackendError as e:
            logger.error(
                "Failed to save profile",
                extra={"participant_id": participant_id, "error": str(e)},
            )

        await self.engine.enqueue_or_match(participant_id)

    async def on_relay(self, participant_id: str, event: str, payload: Any) -> None:
        """Validate a signaling message and forward it to the partner."""
        try:
            message = RELAY_MODELS[event].model_validate(payload)
        except ValidationError as e:
            logger.warning(
                f"Invalid {event} message",
                extra={"participant_id": participant_id, "event": event, "error": str(e)},
            )
            return

        await self.router.relay(participant_id, event, payload, claimed_target=message.target)

    async def on_get_partner_info(self, participant_id: str, event: str, payload: Any) -> None:
        """Answer a profile lookup."""
        try:
            message = GetPartnerInfoMessage.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "Invalid getPartnerInfo message",
                extra={"participant_id": participant_id, "error": str(e)},
            )
            return

        await self.router.get_partner_info(participant_id, message.partnerId)

    async def on_next(self, participant_id: str, event: str, payload: Any) -> None:
        """Leave the current partnership; a fresh "ready" is needed to rematch."""
        logger.info("Participant requested next", extra={"participant_id": participant_id})
        await self.engine.teardown(participant_id)
        await self.transport.send(participant_id, EVENT_WAITING)

    async def on_disconnect(self, participant_id: str) -> None:
        """Unwind all pairing state for a closed connection."""
        logger.info("Participant disconnected", extra={"participant_id": participant_id})
        await self.engine.teardown(participant_id)

        if not self.delete_profile_on_disconnect:
            return

        try:
            await self.backend.delete_profile(participant_id)
        except StateBackendError as e:
            logger.error(
                "Failed to delete profile",
                extra={"participant_id": participant_id, "error": str(e)},
            )
