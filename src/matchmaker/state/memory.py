"""In-process state backend.

Used when no external store is configured and in single-process tests.
Every compound operation runs under one asyncio.Lock, which gives the same
atomicity guarantees the Redis backend gets from server-side scripts.
"""

import asyncio
import logging
import time

from matchmaker.models import Profile
from matchmaker.state.base import StateBackend

logger = logging.getLogger(__name__)


class InMemoryStateBackend(StateBackend):
    """Dictionary-backed pairing state for a single process.

    Profiles may carry a time-to-live; expired profiles are dropped lazily on
    read rather than by a background sweeper.
    """

    def __init__(self, profile_ttl_seconds: int | None = None) -> None:
        """Initialize empty state.

        Args:
            profile_ttl_seconds: Profile retention in seconds (None = forever)
        """
        self.profile_ttl_seconds = profile_ttl_seconds

        self._lock = asyncio.Lock()
        self._profiles: dict[str, tuple[Profile, float | None]] = {}
        self._waiting: set[str] = set()
        self._partners: dict[str, str] = {}

    @property
    def backend_type(self) -> str:
        """Backend type identifier."""
        return "memory"

    async def connect(self) -> None:
        """Nothing to connect; kept for interface symmetry."""
        logger.info(
            "Using in-memory state backend",
            extra={"profile_ttl_seconds": self.profile_ttl_seconds},
        )

    async def disconnect(self) -> None:
        """Drop all state."""
        async with self._lock:
            self._profiles.clear()
            self._waiting.clear()
            self._partners.clear()

    async def health_check(self) -> bool:
        """The in-process store is always available."""
        return True

    def _read_profile(self, participant_id: str, now: float) -> Profile | None:
        entry = self._profiles.get(participant_id)
        if entry is None:
            return None

        profile, expires_at = entry
        if expires_at is not None and expires_at <= now:
            del self._profiles[participant_id]
            return None
        return profile

    async def set_profile(self, participant_id: str, profile: Profile) -> None:
        """Insert or replace a participant's profile."""
        expires_at = None
        if self.profile_ttl_seconds is not None:
            expires_at = time.monotonic() + self.profile_ttl_seconds

        async with self._lock:
            self._profiles[participant_id] = (profile, expires_at)

    async def get_profile(self, participant_id: str) -> Profile | None:
        """Fetch a participant's profile, or None if absent or expired."""
        async with self._lock:
            return self._read_profile(participant_id, time.monotonic())

    async def get_profiles(self, participant_ids: list[str]) -> list[Profile | None]:
        """Fetch several profiles, in argument order."""
        now = time.monotonic()
        async with self._lock:
            return [self._read_profile(pid, now) for pid in participant_ids]

    async def delete_profile(self, participant_id: str) -> None:
        """Remove a participant's profile."""
        async with self._lock:
            self._profiles.pop(participant_id, None)

    async def add_waiting(self, participant_id: str) -> None:
        """Insert a participant into the waiting pool."""
        async with self._lock:
            self._waiting.add(participant_id)

    async def pop_waiting(self) -> str | None:
        """Remove and return an arbitrary waiting participant."""
        async with self._lock:
            if not self._waiting:
                return None
            return self._waiting.pop()

    async def remove_waiting(self, participant_id: str) -> None:
        """Remove a participant from the waiting pool."""
        async with self._lock:
            self._waiting.discard(participant_id)

    async def is_waiting(self, participant_id: str) -> bool:
        """Check waiting pool membership."""
        async with self._lock:
            return participant_id in self._waiting

    async def waiting_count(self) -> int:
        """Number of participants currently waiting."""
        async with self._lock:
            return len(self._waiting)

    async def get_partner(self, participant_id: str) -> str | None:
        """Return the participant's current partner id."""
        async with self._lock:
            return self._partners.get(participant_id)

    async def create_link(self, participant_a: str, participant_b: str) -> bool:
        """Create both directed link entries, or nothing."""
        if participant_a == participant_b:
            return False

        async with self._lock:
            if participant_a in self._partners or participant_b in self._partners:
                return False

            self._partners[participant_a] = participant_b
            self._partners[participant_b] = participant_a
            self._waiting.discard(participant_a)
            self._waiting.discard(participant_b)
            return True

    async def delete_link(self, participant_a: str, participant_b: str) -> bool:
        """Delete both directed link entries if they still point at each other."""
        async with self._lock:
            removed = self._partners.get(participant_a) == participant_b
            if removed:
                del self._partners[participant_a]
            if self._partners.get(participant_b) == participant_a:
                del self._partners[participant_b]
            return removed
