"""ICE server configuration for clients.

Builds the RTCConfiguration.iceServers list handed to browsers. TURN
credentials are either static (from configuration) or minted per request
using the TURN REST scheme shared-secret HMAC (coturn "use-auth-secret").
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Any

from matchmaker.config import IceConfig

logger = logging.getLogger(__name__)

DEFAULT_REST_USERNAME = "matchmaker"


def turn_rest_credentials(
    secret: str,
    ttl_seconds: int,
    user: str = DEFAULT_REST_USERNAME,
    now: float | None = None,
) -> tuple[str, str]:
    """Mint a time-limited TURN username/credential pair.

    Args:
        secret: Shared secret configured on the TURN server
        ttl_seconds: Credential lifetime
        user: Name embedded after the expiry timestamp
        now: Current unix time (defaults to time.time())

    Returns:
        (username, credential) where username is "<expiry>:<user>" and
        credential is base64(HMAC-SHA1(secret, username))
    """
    expiry = int((now if now is not None else time.time()) + ttl_seconds)
    username = f"{expiry}:{user}"
    digest = hmac.new(secret.encode("utf-8"), username.encode("utf-8"), hashlib.sha1).digest()
    return username, base64.b64encode(digest).decode("ascii")


def build_ice_servers(config: IceConfig, now: float | None = None) -> dict[str, Any]:
    """Build the ICE configuration response.

    Args:
        config: ICE configuration
        now: Current unix time, for REST credential expiry

    Returns:
        {"iceServers": [...]} with STUN entries and, when configured, one TURN entry
    """
    ice_servers: list[dict[str, Any]] = [{"urls": url} for url in config.stun_urls]

    if config.turn_url and config.turn_secret:
        username, credential = turn_rest_credentials(
            config.turn_secret,
            config.credential_ttl_seconds,
            user=config.turn_username or DEFAULT_REST_USERNAME,
            now=now,
        )
        ice_servers.append(
            {
                "urls": config.turn_url,
                "username": username,
                "credential": credential,
                "ttl": config.credential_ttl_seconds,
            }
        )
    elif config.turn_url and config.turn_username and config.turn_password:
        ice_servers.append(
            {
                "urls": config.turn_url,
                "username": config.turn_username,
                "credential": config.turn_password,
            }
        )
    else:
        logger.error("TURN server not configured, serving STUN only")

    return {"iceServers": ice_servers}
