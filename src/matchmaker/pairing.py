"""Pairing engine.

Matches participants into two-person partnerships and unwinds them on
disconnect or on request for a new partner.

State machine per participant id:

- UNSEEN → WAITING (enqueue_or_match with an empty pool)
- UNSEEN/WAITING → PARTNERED (matched, as initiator or acceptor)
- PARTNERED → UNSEEN (teardown: own disconnect, partner's teardown, or "next")
- UNSEEN → WAITING (a fresh "ready" after teardown)

The engine holds no pairing state of its own; every decision re-reads the
state backend so that concurrent connections stay consistent.
"""

import logging

from matchmaker.models import ANONYMOUS_PROFILE, Profile
from matchmaker.state.base import StateBackend, StateBackendError
from matchmaker.transport.base import Transport
from matchmaker.transport.websocket_protocol import (
    EVENT_MATCHED,
    EVENT_PARTNER_DISCONNECTED,
    EVENT_WAITING,
)

logger = logging.getLogger(__name__)


class PairingEngine:
    """Enqueue/match/unmatch logic over a state backend.

    Thread-safety: Safe for concurrent use from many asyncio tasks; the
    critical sections (pop, link creation, link deletion) are atomic in the
    backend. Stale reads are tolerated: a partner that vanished between a
    read and an action is treated as already gone.
    """

    def __init__(
        self,
        backend: StateBackend,
        transport: Transport,
        max_match_attempts: int = 5,
    ) -> None:
        """Initialize pairing engine.

        Args:
            backend: Pairing state storage
            transport: Transport used for notifications and liveness checks
            max_match_attempts: Candidates popped per call before falling back
                to waiting
        """
        if max_match_attempts < 1:
            raise ValueError(f"max_match_attempts must be >= 1, got {max_match_attempts}")

        self.backend = backend
        self.transport = transport
        self.max_match_attempts = max_match_attempts

    async def enqueue_or_match(self, participant_id: str) -> str | None:
        """Match a participant with a waiting counterpart, or enqueue it.

        Pops candidates from the waiting pool, discarding self-matches and
        candidates whose connection is gone, up to max_match_attempts times.
        If no candidate is usable the participant joins the pool and gets a
        "waiting" event.

        Args:
            participant_id: Participant requesting a partner

        Returns:
            Partner id if a partnership was created, None otherwise
        """
        try:
            existing = await self.backend.get_partner(participant_id)
            if existing is not None:
                logger.warning(
                    "Match requested by already partnered participant, ignoring",
                    extra={"participant_id": participant_id, "partner_id": existing},
                )
                return None

            for attempt in range(1, self.max_match_attempts + 1):
                candidate = await self.backend.pop_waiting()
                if candidate is None:
                    break

                if candidate == participant_id:
                    logger.debug(
                        "Discarding self-match candidate",
                        extra={"participant_id": participant_id, "attempt": attempt},
                    )
                    continue

                if not self.transport.is_connected(candidate):
                    logger.warning(
                        "Waiting partner disconnected before pairing, retrying",
                        extra={
                            "participant_id": participant_id,
                            "candidate_id": candidate,
                            "attempt": attempt,
                        },
                    )
                    continue

                if await self.create_link(participant_id, candidate):
                    return candidate

                # Link failed: put the live candidate back so it is not stranded
                await self.backend.add_waiting(candidate)
                return None
            else:
                logger.warning(
                    "Match attempts exhausted, falling back to waiting",
                    extra={
                        "participant_id": participant_id,
                        "max_attempts": self.max_match_attempts,
                    },
                )

            await self.backend.add_waiting(participant_id)
            logger.info(
                "Participant added to waiting pool",
                extra={"participant_id": participant_id},
            )

        except StateBackendError as e:
            logger.error(
                "Error finding partner",
                extra={"participant_id": participant_id, "error": str(e)},
            )

        await self.transport.send(participant_id, EVENT_WAITING)
        return None

    async def create_link(self, participant_a: str, participant_b: str) -> bool:
        """Link two participants and notify both.

        The first argument becomes the initiator of the WebRTC handshake.
        A failed atomic write leaves no state change and sends nothing. If
        either side disconnected while the link was being written, the link
        is torn down again and the remaining side gets "partnerDisconnected".

        Args:
            participant_a: Initiator participant id
            participant_b: Acceptor participant id

        Returns:
            True if the partnership was created
        """
        if participant_a == participant_b:
            logger.error(
                "Refusing to link participant with itself",
                extra={"participant_id": participant_a},
            )
            return False

        try:
            profile_a, profile_b = await self.backend.get_profiles(
                [participant_a, participant_b]
            )
            created = await self.backend.create_link(participant_a, participant_b)
        except StateBackendError as e:
            logger.error(
                "Error pairing participants",
                extra={
                    "participant_a": participant_a,
                    "participant_b": participant_b,
                    "error": str(e),
                },
            )
            return False

        if not created:
            logger.warning(
                "Link not created, a participant is already partnered",
                extra={"participant_a": participant_a, "participant_b": participant_b},
            )
            return False

        profile_a = profile_a or ANONYMOUS_PROFILE
        profile_b = profile_b or ANONYMOUS_PROFILE

        await self.transport.send(
            participant_a, EVENT_MATCHED, self._matched_payload(participant_b, True, profile_b)
        )
        await self.transport.send(
            participant_b, EVENT_MATCHED, self._matched_payload(participant_a, False, profile_a)
        )

        logger.info(
            f"Paired participants: {participant_a} ({profile_a.nickname}) <-> "
            f"{participant_b} ({profile_b.nickname})",
            extra={"participant_a": participant_a, "participant_b": participant_b},
        )

        # A side whose teardown ran before the link write left nothing to
        # remove; dissolve the link here so the live side is released.
        for participant_id in (participant_b, participant_a):
            if not self.transport.is_connected(participant_id):
                logger.warning(
                    "Participant disconnected while being paired, dissolving link",
                    extra={"participant_id": participant_id},
                )
                await self.teardown(participant_id)
                break

        return True

    async def teardown(self, participant_id: str) -> str | None:
        """Dissolve a participant's partnership and leave the waiting pool.

        Idempotent. The former partner receives "partnerDisconnected" exactly
        once (from whichever teardown actually removed the link) and is not
        re-enqueued; it must send "ready" again.

        Args:
            participant_id: Participant leaving its partnership

        Returns:
            Former partner id if this call removed a link, None otherwise
        """
        try:
            partner_id = await self.backend.get_partner(participant_id)

            removed = False
            if partner_id is not None:
                removed = await self.backend.delete_link(participant_id, partner_id)

            await self.backend.remove_waiting(participant_id)

        except StateBackendError as e:
            logger.error(
                "Error tearing down partnership",
                extra={"participant_id": participant_id, "error": str(e)},
            )
            return None

        if not removed or partner_id is None:
            return None

        if self.transport.is_connected(partner_id):
            await self.transport.send(partner_id, EVENT_PARTNER_DISCONNECTED)
            logger.info(
                "Notified partner of disconnection",
                extra={"participant_id": participant_id, "partner_id": partner_id},
            )

        logger.info(
            f"Removed partner link: {participant_id} <-> {partner_id}",
            extra={"participant_id": participant_id, "partner_id": partner_id},
        )
        return partner_id

    @staticmethod
    def _matched_payload(partner_id: str, initiator: bool, partner: Profile) -> dict[str, object]:
        return {
            "partnerId": partner_id,
            "initiator": initiator,
            "partnerNickname": partner.nickname,
        }
