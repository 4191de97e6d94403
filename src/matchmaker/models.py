"""Participant profile record.

A profile is the small, participant-supplied display record (nickname and
gender) sent with the "ready" message. It carries no authentication
guarantee and is stored as JSON by the state backends.
"""

import json
from dataclasses import asdict, dataclass

DEFAULT_NICKNAME = "Anonymous"
DEFAULT_GENDER = "unknown"
MAX_NICKNAME_LENGTH = 50


@dataclass(frozen=True)
class Profile:
    """Participant display profile.

    Attributes:
        nickname: Display name (1-50 characters after trimming)
        gender: Free-form gender string supplied by the client
    """

    nickname: str = DEFAULT_NICKNAME
    gender: str = DEFAULT_GENDER

    def to_dict(self) -> dict[str, str]:
        """Return the profile as a plain dictionary (the partnerInfo payload)."""
        return asdict(self)

    def to_json(self) -> str:
        """Serialize to JSON string for backend storage.

        Returns:
            JSON-encoded profile data
        """
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, data: str) -> "Profile":
        """Deserialize from JSON string.

        Missing fields fall back to the anonymous defaults, which matches how
        profiles written by older clients (nickname only) are read.

        Args:
            data: JSON-encoded profile data

        Returns:
            Deserialized Profile

        Raises:
            ValueError: If JSON is invalid or not an object
        """
        try:
            obj = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid profile JSON: {e}") from e

        if not isinstance(obj, dict):
            raise ValueError(f"Invalid profile JSON: expected object, got {type(obj).__name__}")

        return cls(
            nickname=str(obj.get("nickname") or DEFAULT_NICKNAME),
            gender=str(obj.get("gender") or DEFAULT_GENDER),
        )


ANONYMOUS_PROFILE = Profile()


def normalize_nickname(nickname: str) -> str:
    """Trim a nickname and check its length.

    Args:
        nickname: Raw nickname from the client

    Returns:
        Trimmed nickname

    Raises:
        ValueError: If the trimmed nickname is empty or longer than 50 characters
    """
    trimmed = nickname.strip()
    if not trimmed:
        raise ValueError("nickname must not be empty")
    if len(trimmed) > MAX_NICKNAME_LENGTH:
        raise ValueError(
            f"nickname must be at most {MAX_NICKNAME_LENGTH} characters, got {len(trimmed)}"
        )
    return trimmed
