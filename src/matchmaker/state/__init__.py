"""State backends for pairing data.

Provides the storage abstraction plus in-memory and Redis implementations.
"""

import logging

from matchmaker.config import MatchmakerConfig
from matchmaker.state.base import StateBackend, StateBackendError
from matchmaker.state.memory import InMemoryStateBackend
from matchmaker.state.redis_backend import RedisStateBackend

logger = logging.getLogger(__name__)

__all__ = [
    "StateBackend",
    "StateBackendError",
    "InMemoryStateBackend",
    "RedisStateBackend",
    "create_state_backend",
]


def create_state_backend(config: MatchmakerConfig) -> StateBackend:
    """Build the backend selected by configuration.

    Redis is used when a URL is configured; otherwise the in-process backend
    is returned, which cannot share state between server processes.

    Args:
        config: Matchmaker configuration

    Returns:
        Unconnected state backend
    """
    ttl = config.pairing.profile_ttl_seconds

    if config.redis.url:
        return RedisStateBackend(
            redis_url=config.redis.url,
            db=config.redis.db,
            key_prefix=config.redis.key_prefix,
            profile_ttl_seconds=ttl,
            connection_pool_size=config.redis.connection_pool_size,
        )

    logger.warning(
        "REDIS_URL not configured; pairing state is process-local and not shared"
    )
    return InMemoryStateBackend(profile_ttl_seconds=ttl)
