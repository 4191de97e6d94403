"""Base state backend abstraction.

Defines the storage interface shared by the pairing engine and the relay
router. A backend owns three structures:

- profile store: participant id → Profile
- waiting pool: set of participant ids seeking a partner
- partner links: directed entries A→B, always created and deleted in pairs

Implementations must make pop_waiting, create_link and delete_link atomic
with respect to concurrent callers. Everything else may be a plain read or
write.
"""

from abc import ABC, abstractmethod

from matchmaker.models import Profile


class StateBackendError(ConnectionError):
    """Raised when the underlying store cannot complete an operation."""


class StateBackend(ABC):
    """Base class for pairing state storage.

    Callers never cache state returned from a backend across operations;
    every operation re-reads so that concurrent connections (or processes,
    for shared backends) observe a consistent view.
    """

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Backend type identifier (e.g., 'memory', 'redis')."""
        pass

    @abstractmethod
    async def connect(self) -> None:
        """Prepare the backend for use.

        Must be idempotent.

        Raises:
            StateBackendError: If the store is unreachable
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release backend resources. Must be idempotent."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the backend is usable.

        Returns:
            True if the store is reachable and responsive
        """
        pass

    # Profile store

    @abstractmethod
    async def set_profile(self, participant_id: str, profile: Profile) -> None:
        """Insert or replace a participant's profile."""
        pass

    @abstractmethod
    async def get_profile(self, participant_id: str) -> Profile | None:
        """Fetch a participant's profile, or None if absent or expired."""
        pass

    @abstractmethod
    async def get_profiles(self, participant_ids: list[str]) -> list[Profile | None]:
        """Fetch several profiles in one round trip, in argument order."""
        pass

    @abstractmethod
    async def delete_profile(self, participant_id: str) -> None:
        """Remove a participant's profile (no-op if absent)."""
        pass

    # Waiting pool

    @abstractmethod
    async def add_waiting(self, participant_id: str) -> None:
        """Insert a participant into the waiting pool."""
        pass

    @abstractmethod
    async def pop_waiting(self) -> str | None:
        """Atomically remove and return an arbitrary waiting participant.

        No two concurrent callers may receive the same id.

        Returns:
            A participant id, or None if the pool is empty
        """
        pass

    @abstractmethod
    async def remove_waiting(self, participant_id: str) -> None:
        """Remove a participant from the waiting pool (no-op if absent)."""
        pass

    @abstractmethod
    async def is_waiting(self, participant_id: str) -> bool:
        """Check waiting pool membership."""
        pass

    @abstractmethod
    async def waiting_count(self) -> int:
        """Number of participants currently in the waiting pool."""
        pass

    # Partner links

    @abstractmethod
    async def get_partner(self, participant_id: str) -> str | None:
        """Return the participant's current partner id, or None."""
        pass

    @abstractmethod
    async def create_link(self, participant_a: str, participant_b: str) -> bool:
        """Atomically create both directed link entries.

        Fails without any change when a == b or when either participant
        already has a partner. On success both participants are also removed
        from the waiting pool in the same atomic step.

        Returns:
            True if the link was created
        """
        pass

    @abstractmethod
    async def delete_link(self, participant_a: str, participant_b: str) -> bool:
        """Atomically delete both directed link entries.

        Each entry is removed only if it still points at the expected
        counterpart, so a stale call never breaks a newer partnership.

        Returns:
            True if this call removed the a→b entry
        """
        pass
