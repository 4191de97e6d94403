"""Redis-backed pairing state.

Shares the waiting pool, partner links and profiles between server processes.
Key layout (prefix configurable, default "videochat:"):

- {prefix}waiting            SET of waiting participant ids
- {prefix}partner:{id}       STRING holding the partner id
- {prefix}profile:{id}       STRING holding the profile JSON

Pops use SPOP. Link creation and deletion run as Lua scripts so that both
directed entries change in one atomic step.
"""

import logging
from typing import Any

from redis import asyncio as aioredis
from redis.asyncio import ConnectionPool

from matchmaker.models import Profile
from matchmaker.state.base import StateBackend, StateBackendError

logger = logging.getLogger(__name__)

# KEYS: partner:a, partner:b, waiting    ARGV: a, b
CREATE_LINK_SCRIPT = """
if ARGV[1] == ARGV[2] then
    return 0
end
if redis.call('EXISTS', KEYS[1]) == 1 or redis.call('EXISTS', KEYS[2]) == 1 then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2])
redis.call('SET', KEYS[2], ARGV[1])
redis.call('SREM', KEYS[3], ARGV[1], ARGV[2])
return 1
"""

# KEYS: partner:a, partner:b    ARGV: a, b
DELETE_LINK_SCRIPT = """
local removed = 0
if redis.call('GET', KEYS[1]) == ARGV[2] then
    redis.call('DEL', KEYS[1])
    removed = 1
end
if redis.call('GET', KEYS[2]) == ARGV[1] then
    redis.call('DEL', KEYS[2])
end
return removed
"""


class RedisStateBackend(StateBackend):
    """Pairing state stored in Redis.

    Every failure of the underlying client is re-raised as StateBackendError
    so callers can degrade without knowing about redis exceptions.
    """

    def __init__(
        self,
        redis_url: str,
        db: int = 0,
        key_prefix: str = "videochat:",
        profile_ttl_seconds: int | None = None,
        connection_pool_size: int = 10,
    ) -> None:
        """Initialize backend with Redis connection settings.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379")
            db: Redis database number (0-15)
            key_prefix: Prefix for every key written by this backend
            profile_ttl_seconds: Profile retention in seconds (None = no expiry)
            connection_pool_size: Redis connection pool size
        """
        self.redis_url = redis_url
        self.db = db
        self.key_prefix = key_prefix
        self.profile_ttl_seconds = profile_ttl_seconds
        self.connection_pool_size = connection_pool_size

        # Connection pool (lazy initialization)
        self._pool: Any = None
        self._redis: Any = None
        self._create_link_script: Any = None
        self._delete_link_script: Any = None
        self._connected = False

    @property
    def backend_type(self) -> str:
        """Backend type identifier."""
        return "redis"

    @property
    def waiting_key(self) -> str:
        """Key of the waiting pool set."""
        return f"{self.key_prefix}waiting"

    def partner_key(self, participant_id: str) -> str:
        """Key of a participant's directed partner entry."""
        return f"{self.key_prefix}partner:{participant_id}"

    def profile_key(self, participant_id: str) -> str:
        """Key of a participant's profile."""
        return f"{self.key_prefix}profile:{participant_id}"

    async def connect(self) -> None:
        """Establish Redis connection pool and register scripts.

        This method is idempotent - safe to call multiple times.

        Raises:
            StateBackendError: If Redis connection fails
        """
        if self._connected:
            return

        try:
            self._pool = ConnectionPool.from_url(
                self.redis_url,
                db=self.db,
                max_connections=self.connection_pool_size,
                decode_responses=True,
            )
            self._redis = aioredis.Redis(connection_pool=self._pool)

            # Test connection
            await self._redis.ping()

            self._create_link_script = self._redis.register_script(CREATE_LINK_SCRIPT)
            self._delete_link_script = self._redis.register_script(DELETE_LINK_SCRIPT)
            self._connected = True
            logger.info(
                f"Connected to Redis at {self.redis_url} (db={self.db}, "
                f"prefix={self.key_prefix!r}, pool_size={self.connection_pool_size})"
            )
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise StateBackendError(f"Redis connection failed: {e}") from e

    async def disconnect(self) -> None:
        """Close Redis connection pool gracefully.

        This method is idempotent - safe to call multiple times.
        """
        if not self._connected:
            return

        try:
            if self._redis:
                await self._redis.aclose()
            if self._pool:
                await self._pool.disconnect()
            logger.info("Disconnected from Redis")
        except Exception as e:
            logger.warning(f"Error during Redis disconnect: {e}")
        finally:
            self._connected = False

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy.

        Returns:
            True if Redis is reachable and responsive, False otherwise
        """
        if not self._connected or not self._redis:
            return False

        try:
            await self._redis.ping()
            return True
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    def _client(self) -> Any:
        if not self._connected or not self._redis:
            raise StateBackendError("Redis not connected. Call connect() first.")
        return self._redis

    @staticmethod
    def _decode_profile(participant_id: str, data: str | None) -> Profile | None:
        if not data:
            return None
        try:
            return Profile.from_json(data)
        except ValueError as e:
            logger.warning(f"Skipping invalid profile data for '{participant_id}': {e}")
            return None

    async def set_profile(self, participant_id: str, profile: Profile) -> None:
        """Store a profile, with expiry when a TTL is configured."""
        client = self._client()
        try:
            await client.set(
                self.profile_key(participant_id),
                profile.to_json(),
                ex=self.profile_ttl_seconds,
            )
        except Exception as e:
            raise StateBackendError(f"Failed to store profile for '{participant_id}': {e}") from e

    async def get_profile(self, participant_id: str) -> Profile | None:
        """Fetch a participant's profile."""
        client = self._client()
        try:
            data = await client.get(self.profile_key(participant_id))
        except Exception as e:
            raise StateBackendError(f"Failed to read profile for '{participant_id}': {e}") from e
        return self._decode_profile(participant_id, data)

    async def get_profiles(self, participant_ids: list[str]) -> list[Profile | None]:
        """Fetch several profiles with a single MGET."""
        if not participant_ids:
            return []

        client = self._client()
        try:
            values = await client.mget([self.profile_key(pid) for pid in participant_ids])
        except Exception as e:
            raise StateBackendError(f"Failed to read profiles: {e}") from e
        return [
            self._decode_profile(pid, data)
            for pid, data in zip(participant_ids, values, strict=True)
        ]

    async def delete_profile(self, participant_id: str) -> None:
        """Remove a participant's profile."""
        client = self._client()
        try:
            await client.delete(self.profile_key(participant_id))
        except Exception as e:
            raise StateBackendError(f"Failed to delete profile for '{participant_id}': {e}") from e

    async def add_waiting(self, participant_id: str) -> None:
        """SADD the participant to the waiting pool."""
        client = self._client()
        try:
            await client.sadd(self.waiting_key, participant_id)
        except Exception as e:
            raise StateBackendError(f"Failed to enqueue '{participant_id}': {e}") from e

    async def pop_waiting(self) -> str | None:
        """SPOP one arbitrary member of the waiting pool."""
        client = self._client()
        try:
            participant_id: str | None = await client.spop(self.waiting_key)
        except Exception as e:
            raise StateBackendError(f"Failed to pop waiting participant: {e}") from e
        return participant_id

    async def remove_waiting(self, participant_id: str) -> None:
        """SREM the participant from the waiting pool."""
        client = self._client()
        try:
            await client.srem(self.waiting_key, participant_id)
        except Exception as e:
            raise StateBackendError(f"Failed to dequeue '{participant_id}': {e}") from e

    async def is_waiting(self, participant_id: str) -> bool:
        """Check waiting pool membership."""
        client = self._client()
        try:
            return bool(await client.sismember(self.waiting_key, participant_id))
        except Exception as e:
            raise StateBackendError(f"Failed to check waiting pool: {e}") from e

    async def waiting_count(self) -> int:
        """SCARD of the waiting pool."""
        client = self._client()
        try:
            return int(await client.scard(self.waiting_key))
        except Exception as e:
            raise StateBackendError(f"Failed to count waiting pool: {e}") from e

    async def get_partner(self, participant_id: str) -> str | None:
        """Return the participant's current partner id."""
        client = self._client()
        try:
            partner_id: str | None = await client.get(self.partner_key(participant_id))
        except Exception as e:
            raise StateBackendError(f"Failed to read partner of '{participant_id}': {e}") from e
        return partner_id

    async def create_link(self, participant_a: str, participant_b: str) -> bool:
        """Create both directed entries and clear both from the pool, atomically."""
        self._client()
        try:
            created = await self._create_link_script(
                keys=[
                    self.partner_key(participant_a),
                    self.partner_key(participant_b),
                    self.waiting_key,
                ],
                args=[participant_a, participant_b],
            )
        except Exception as e:
            raise StateBackendError(
                f"Failed to link '{participant_a}' <-> '{participant_b}': {e}"
            ) from e
        return bool(created)

    async def delete_link(self, participant_a: str, participant_b: str) -> bool:
        """Delete both directed entries that still point at each other, atomically."""
        self._client()
        try:
            removed = await self._delete_link_script(
                keys=[self.partner_key(participant_a), self.partner_key(participant_b)],
                args=[participant_a, participant_b],
            )
        except Exception as e:
            raise StateBackendError(
                f"Failed to unlink '{participant_a}' <-> '{participant_b}': {e}"
            ) from e
        return bool(removed)
