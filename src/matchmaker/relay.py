"""Signaling relay.

Forwards opaque handshake messages (offer, answer, candidate, reaction)
between the two members of a partnership, and serves profile lookups.
"""

import logging
from typing import Any

from matchmaker.models import ANONYMOUS_PROFILE, Profile
from matchmaker.state.base import StateBackend, StateBackendError
from matchmaker.transport.base import Transport
from matchmaker.transport.websocket_protocol import EVENT_PARTNER_INFO

logger = logging.getLogger(__name__)


class RelayRouter:
    """Routes signaling messages to a participant's current partner.

    The destination is always resolved server-side from the partner link,
    never taken from the message. Messages with no live destination are
    dropped silently; disconnect handling reconciles any stale link.
    """

    def __init__(self, backend: StateBackend, transport: Transport) -> None:
        """Initialize relay router.

        Args:
            backend: Pairing state storage (partner links, profiles)
            transport: Transport used to deliver messages
        """
        self.backend = backend
        self.transport = transport

    async def relay(
        self,
        sender_id: str,
        event: str,
        payload: Any,
        claimed_target: str | None = None,
    ) -> bool:
        """Forward a message to the sender's partner.

        The payload is delivered unchanged except for a "from" key set to
        the sender's id.

        Args:
            sender_id: Participant sending the message
            event: Event name, relayed verbatim
            payload: Opaque message payload
            claimed_target: Partner id named by the client, informational only

        Returns:
            True if the message was delivered to a live partner
        """
        try:
            partner_id = await self.backend.get_partner(sender_id)
        except StateBackendError as e:
            logger.error(
                f"Error relaying {event}",
                extra={"participant_id": sender_id, "event": event, "error": str(e)},
            )
            return False

        if partner_id is None:
            logger.debug(
                "No partner to relay to, dropping",
                extra={"participant_id": sender_id, "event": event},
            )
            return False

        if claimed_target is not None and claimed_target != partner_id:
            logger.debug(
                "Client target differs from partner link, using partner link",
                extra={
                    "participant_id": sender_id,
                    "partner_id": partner_id,
                    "target": claimed_target,
                },
            )

        if not self.transport.is_connected(partner_id):
            logger.debug(
                "Partner not connected, dropping",
                extra={"participant_id": sender_id, "partner_id": partner_id, "event": event},
            )
            return False

        outgoing = {**payload, "from": sender_id} if isinstance(payload, dict) else payload
        delivered = await self.transport.send(partner_id, event, outgoing)

        if delivered:
            logger.debug(
                f"Relayed {event}",
                extra={"participant_id": sender_id, "partner_id": partner_id, "event": event},
            )
        return delivered

    async def get_partner_info(self, requester_id: str, target_id: str) -> Profile:
        """Send a participant's stored profile to the requester.

        Pure read; the target does not need to be connected. A missing
        profile or a backend failure yields the anonymous default.

        Args:
            requester_id: Participant asking for the profile
            target_id: Participant whose profile is requested

        Returns:
            The profile that was sent
        """
        logger.info(
            "Partner info requested",
            extra={"participant_id": requester_id, "target_id": target_id},
        )

        try:
            profile = await self.backend.get_profile(target_id)
        except StateBackendError as e:
            logger.error(
                "Error retrieving partner info",
                extra={"participant_id": requester_id, "target_id": target_id, "error": str(e)},
            )
            profile = None

        if profile is None:
            logger.warning(
                "No profile found, sending default",
                extra={"participant_id": requester_id, "target_id": target_id},
            )
            profile = ANONYMOUS_PROFILE

        await self.transport.send(requester_id, EVENT_PARTNER_INFO, profile.to_dict())
        return profile
