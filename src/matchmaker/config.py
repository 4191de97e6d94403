"""Configuration schema for the matchmaker server.

Defines Pydantic models for loading and validating configuration from YAML
files and environment variables.
"""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_FRONTEND_ORIGIN = "https://barshatalk-frontend.vercel.app"
DEFAULT_STUN_URL = "stun:stun.l.google.com:19302"


class WebSocketConfig(BaseModel):
    """WebSocket transport configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(default=8080, ge=1024, le=65535, description="Bind port")
    max_connections: int = Field(
        default=1000, ge=1, description="Maximum concurrent connections"
    )
    max_message_bytes: int = Field(
        default=65536, ge=1024, description="Maximum size of one inbound frame"
    )
    allowed_origins: list[str] = Field(
        default_factory=list,
        description="Origins accepted on the WebSocket handshake (empty = any)",
    )


class TransportConfig(BaseModel):
    """Transport layer configuration."""

    websocket: WebSocketConfig = Field(default_factory=WebSocketConfig)


class HttpConfig(BaseModel):
    """HTTP side-channel (ICE credentials, health) configuration."""

    enabled: bool = Field(default=True, description="Serve the HTTP endpoints")
    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(default=8081, ge=1024, le=65535, description="Bind port")
    cors_origins: list[str] = Field(
        default_factory=lambda: [DEFAULT_FRONTEND_ORIGIN],
        description="Origins allowed by the CORS middleware ('*' for any)",
    )


class RedisConfig(BaseModel):
    """Redis configuration for shared pairing state.

    When url is unset the server falls back to the in-memory backend, which
    only works for a single process.
    """

    url: str | None = Field(default=None, description="Redis connection URL")
    db: int = Field(default=0, ge=0, le=15, description="Redis database number")
    key_prefix: str = Field(
        default="videochat:",
        description="Key prefix for waiting pool, partner links and profiles",
    )
    connection_pool_size: int = Field(
        default=10,
        ge=1,
        description="Redis connection pool size",
    )


class PairingConfig(BaseModel):
    """Pairing engine configuration."""

    max_match_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Candidates popped per match attempt before falling back to waiting",
    )
    profile_ttl_seconds: int | None = Field(
        default=3600,
        ge=1,
        description="How long profiles outlive their connection (None = no expiry)",
    )
    delete_profile_on_disconnect: bool = Field(
        default=False,
        description="Delete the profile on disconnect instead of letting it expire",
    )


class IceConfig(BaseModel):
    """ICE server configuration served to clients.

    TURN is served with static credentials when turn_username/turn_password
    are set, or with time-limited REST credentials when turn_secret is set.
    """

    stun_urls: list[str] = Field(
        default_factory=lambda: [DEFAULT_STUN_URL],
        description="STUN server URLs",
    )
    turn_url: str | None = Field(default=None, description="TURN server URL")
    turn_username: str | None = Field(default=None, description="Static TURN username")
    turn_password: str | None = Field(default=None, description="Static TURN password")
    turn_secret: str | None = Field(
        default=None,
        description="Shared secret for TURN REST (use-auth-secret) credentials",
    )
    credential_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        description="Lifetime of TURN REST credentials",
    )


class MatchmakerConfig(BaseModel):
    """Root matchmaker configuration."""

    transport: TransportConfig = Field(default_factory=TransportConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    pairing: PairingConfig = Field(default_factory=PairingConfig)
    ice: IceConfig = Field(default_factory=IceConfig)

    # Operational settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    graceful_shutdown_timeout_s: int = Field(
        default=10,
        ge=1,
        description="Graceful shutdown timeout in seconds",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a standard logging level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @staticmethod
    def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variable overrides to raw configuration data.

        Recognized variables: REDIS_URL, PORT, HTTP_PORT, FRONTEND_URL,
        TURN_URL, TURN_USERNAME, TURN_PASSWORD, TURN_SECRET, LOG_LEVEL.

        Args:
            data: Raw configuration mapping (modified in place)

        Returns:
            The same mapping, for chaining
        """
        if redis_url := os.getenv("REDIS_URL"):
            data.setdefault("redis", {})["url"] = redis_url

        if port := os.getenv("PORT"):
            transport = data.setdefault("transport", {})
            transport.setdefault("websocket", {})["port"] = int(port)

        if http_port := os.getenv("HTTP_PORT"):
            data.setdefault("http", {})["port"] = int(http_port)

        if frontend_url := os.getenv("FRONTEND_URL"):
            http = data.setdefault("http", {})
            origins = list(http.get("cors_origins") or [])
            if frontend_url not in origins:
                origins.append(frontend_url)
            http["cors_origins"] = origins

            websocket = data.setdefault("transport", {}).setdefault("websocket", {})
            ws_origins = list(websocket.get("allowed_origins") or [])
            if ws_origins and frontend_url not in ws_origins:
                ws_origins.append(frontend_url)
                websocket["allowed_origins"] = ws_origins

        for env_name, field_name in (
            ("TURN_URL", "turn_url"),
            ("TURN_USERNAME", "turn_username"),
            ("TURN_PASSWORD", "turn_password"),
            ("TURN_SECRET", "turn_secret"),
        ):
            if value := os.getenv(env_name):
                data.setdefault("ice", {})[field_name] = value

        if log_level := os.getenv("LOG_LEVEL"):
            data["log_level"] = log_level

        return data

    @classmethod
    def from_yaml(cls, path: Path) -> "MatchmakerConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        return cls.model_validate(cls.apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "MatchmakerConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Environment overrides apply in both cases.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(cls.apply_env_overrides({}))
