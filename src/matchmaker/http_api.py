"""HTTP side-channel for the matchmaker.

Serves ICE server configuration to browsers plus health endpoints for load
balancers and orchestration tools (Docker healthcheck, Kubernetes probes).
"""

import logging
import time
from typing import Any

from aiohttp import web

from matchmaker.config import HttpConfig, IceConfig
from matchmaker.ice import build_ice_servers
from matchmaker.state.base import StateBackend
from matchmaker.transport.base import Transport

logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = "GET, POST"
CORS_ALLOW_HEADERS = "Content-Type"


def create_cors_middleware(allowed_origins: list[str]) -> Any:
    """Create a CORS middleware for the given origins.

    Args:
        allowed_origins: Exact origins to allow, or ["*"] for any

    Returns:
        aiohttp middleware
    """
    allow_any = "*" in allowed_origins
    origins = set(allowed_origins)

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
        origin = request.headers.get("Origin")

        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            response = await handler(request)

        if origin and (allow_any or origin in origins):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"

        return response

    return cors_middleware


class HttpApiHandler:
    """Handlers for the ICE configuration and health endpoints."""

    def __init__(
        self,
        ice_config: IceConfig,
        backend: StateBackend | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Initialize handler.

        Args:
            ice_config: ICE server configuration
            backend: State backend, checked by /health (optional)
            transport: Transport, reported by /health (optional)
        """
        self.ice_config = ice_config
        self.backend = backend
        self.transport = transport
        self.start_time = time.time()

    async def turn_credentials(self, request: web.Request) -> web.Response:
        """ICE server configuration endpoint.

        Response format:
        {
            "iceServers": [
                {"urls": "stun:..."},
                {"urls": "turn:...", "username": str, "credential": str}
            ]
        }
        """
        return web.json_response(build_ice_servers(self.ice_config))

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        Returns:
            200 OK: Backend reachable
            503 Service Unavailable: Backend unreachable
        """
        backend_ok = False
        backend_error = None
        waiting = None
        if self.backend is not None:
            try:
                backend_ok = await self.backend.health_check()
                if backend_ok:
                    waiting = await self.backend.waiting_count()
            except Exception as e:
                backend_ok = False
                backend_error = str(e)
                logger.warning("Backend health check failed", extra={"error": str(e)})

        response_data = {
            "status": "healthy" if backend_ok else "unhealthy",
            "uptime_seconds": time.time() - self.start_time,
            "backend": {
                "type": self.backend.backend_type if self.backend is not None else None,
                "ok": backend_ok,
                "error": backend_error,
            },
            "connections": self.transport.connection_count if self.transport else 0,
            "waiting": waiting,
        }

        logger.debug("Health check performed", extra={"status": response_data["status"]})

        return web.json_response(response_data, status=200 if backend_ok else 503)

    async def liveness_check(self, request: web.Request) -> web.Response:
        """Liveness check endpoint.

        Returns OK if the process is running, even if dependencies are down.
        """
        return web.json_response(
            {
                "status": "alive",
                "uptime_seconds": time.time() - self.start_time,
            },
            status=200,
        )


def create_http_app(
    http_config: HttpConfig,
    ice_config: IceConfig,
    backend: StateBackend | None = None,
    transport: Transport | None = None,
) -> web.Application:
    """Build the aiohttp application with CORS and all routes.

    Args:
        http_config: HTTP configuration (CORS origins)
        ice_config: ICE server configuration
        backend: State backend for /health (optional)
        transport: Transport for /health (optional)

    Returns:
        Configured aiohttp Application
    """
    app = web.Application(middlewares=[create_cors_middleware(http_config.cors_origins)])
    handler = HttpApiHandler(ice_config, backend=backend, transport=transport)

    app.router.add_get("/api/turn-credentials", handler.turn_credentials)
    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/liveness", handler.liveness_check)

    logger.info("HTTP endpoints configured: /api/turn-credentials, /health, /liveness")
    return app
