"""WebSocket message protocol definitions.

Every frame, in both directions, is a JSON envelope
``{"event": <name>, "data": <payload or null>}``. The Pydantic models below
validate the envelope and the payloads of the inbound events.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from matchmaker.models import normalize_nickname

# Client → Server event names
EVENT_READY = "ready"
EVENT_OFFER = "offer"
EVENT_ANSWER = "answer"
EVENT_CANDIDATE = "candidate"
EVENT_REACTION = "reaction"
EVENT_GET_PARTNER_INFO = "getPartnerInfo"
EVENT_NEXT = "next"

# Server → Client event names
EVENT_CONNECTED = "connected"
EVENT_WAITING = "waiting"
EVENT_MATCHED = "matched"
EVENT_PARTNER_DISCONNECTED = "partnerDisconnected"
EVENT_PARTNER_INFO = "partnerInfo"
EVENT_ERROR = "error"

# Events relayed verbatim to the partner
RELAYED_EVENTS = (EVENT_OFFER, EVENT_ANSWER, EVENT_CANDIDATE, EVENT_REACTION)


class Envelope(BaseModel):
    """Wire envelope for one named message."""

    event: str = Field(..., min_length=1, description="Event name")
    data: Any = Field(default=None, description="Event payload")


class ReadyMessage(BaseModel):
    """Client → Server: participant profile, request to be matched."""

    nickname: str = Field(..., description="Display name, 1-50 chars after trimming")
    gender: str = Field(..., description="Free-form gender string")

    @field_validator("nickname")
    @classmethod
    def validate_nickname(cls, v: str) -> str:
        """Trim the nickname and enforce its length."""
        return normalize_nickname(v)


class RelayMessage(BaseModel):
    """Client → Server: signaling message for the current partner.

    The target is informational only; the destination is always resolved
    from the sender's partner link. Extra keys are kept and forwarded.
    """

    model_config = ConfigDict(extra="allow")

    target: str = Field(..., min_length=1, description="Client's view of its partner id")


class OfferMessage(RelayMessage):
    """Client → Server: WebRTC session description offer."""

    offer: Any = Field(..., description="Opaque session description")

    @field_validator("offer")
    @classmethod
    def validate_present(cls, v: Any) -> Any:
        """Reject an explicit null offer."""
        if v is None:
            raise ValueError("offer must not be null")
        return v


class AnswerMessage(RelayMessage):
    """Client → Server: WebRTC session description answer."""

    answer: Any = Field(..., description="Opaque session description")

    @field_validator("answer")
    @classmethod
    def validate_present(cls, v: Any) -> Any:
        """Reject an explicit null answer."""
        if v is None:
            raise ValueError("answer must not be null")
        return v


class CandidateMessage(RelayMessage):
    """Client → Server: ICE candidate."""

    candidate: Any = Field(..., description="Opaque ICE candidate")

    @field_validator("candidate")
    @classmethod
    def validate_present(cls, v: Any) -> Any:
        """Reject an explicit null candidate."""
        if v is None:
            raise ValueError("candidate must not be null")
        return v


class ReactionMessage(RelayMessage):
    """Client → Server: application reaction (arbitrary payload)."""


class GetPartnerInfoMessage(BaseModel):
    """Client → Server: request for a partner's profile."""

    partnerId: str = Field(..., min_length=1, description="Participant id to look up")  # noqa: N815


RELAY_MODELS: dict[str, type[RelayMessage]] = {
    EVENT_OFFER: OfferMessage,
    EVENT_ANSWER: AnswerMessage,
    EVENT_CANDIDATE: CandidateMessage,
    EVENT_REACTION: ReactionMessage,
}


def encode_event(event: str, payload: Any = None) -> str:
    """Serialize a named message to a JSON text frame."""
    return Envelope(event=event, data=payload).model_dump_json()
