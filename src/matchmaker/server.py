"""Matchmaker server with WebSocket transport and HTTP side-channel.

Main server implementation that:
1. Loads configuration and sets up logging
2. Connects the pairing state backend (Redis or in-memory)
3. Starts the WebSocket transport
4. Serves ICE configuration and health endpoints over HTTP
5. Accepts participant sessions and runs one coordinator task per session
"""

import argparse
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from aiohttp.web import AppRunner, TCPSite

from matchmaker.config import MatchmakerConfig
from matchmaker.coordinator import SessionCoordinator
from matchmaker.http_api import create_http_app
from matchmaker.pairing import PairingEngine
from matchmaker.relay import RelayRouter
from matchmaker.state import StateBackend, create_state_backend
from matchmaker.transport.websocket_transport import WebSocketTransport

logger = logging.getLogger(__name__)


@dataclass
class MatchmakerServer:
    """Running server components.

    Built by build_server(); start() binds the network listeners and
    serve_forever() runs the accept loop.
    """

    config: MatchmakerConfig
    backend: StateBackend
    transport: WebSocketTransport
    coordinator: SessionCoordinator
    runner: AppRunner | None = None
    session_tasks: set[asyncio.Task[None]] = field(default_factory=set)

    async def start(self) -> None:
        """Connect the backend and start the WebSocket and HTTP listeners.

        Raises:
            StateBackendError: If the configured backend is unreachable
            OSError: If a port cannot be bound
        """
        await self.backend.connect()
        logger.info("State backend connected", extra={"backend": self.backend.backend_type})

        await self.transport.start()
        logger.info("WebSocket transport started", extra={"port": self.transport.port})

        http_config = self.config.http
        if http_config.enabled:
            app = create_http_app(http_config, self.config.ice, self.backend, self.transport)
            self.runner = AppRunner(app)
            await self.runner.setup()
            site = TCPSite(self.runner, http_config.host, http_config.port)
            await site.start()
            logger.info("HTTP server started", extra={"port": http_config.port})

    async def serve_forever(self) -> None:
        """Accept sessions and spawn a coordinator task for each."""
        logger.info("Matchmaker server ready")

        while True:
            session = await self.transport.accept_session()
            logger.info(
                "New WebSocket session accepted",
                extra={"session_id": session.session_id},
            )
            task = asyncio.create_task(self.coordinator.handle_session(session))
            self.session_tasks.add(task)
            task.add_done_callback(self.session_tasks.discard)

    async def stop(self) -> None:
        """Stop listeners, wait for sessions to unwind, release the backend."""
        logger.info("Shutting down matchmaker server")

        # Closing the transport ends every session's inbound stream, which
        # runs its teardown.
        await self.transport.stop()
        logger.info("WebSocket transport stopped")

        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            logger.info("HTTP server stopped")

        if self.session_tasks:
            logger.info("Waiting for sessions to complete", extra={"count": len(self.session_tasks)})
            _, pending = await asyncio.wait(
                set(self.session_tasks), timeout=self.config.graceful_shutdown_timeout_s
            )
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        await self.backend.disconnect()
        logger.info("Matchmaker server stopped")


def build_server(config: MatchmakerConfig) -> MatchmakerServer:
    """Wire backend, transport, engine, router and coordinator together.

    Args:
        config: Matchmaker configuration

    Returns:
        Unstarted server
    """
    backend = create_state_backend(config)

    ws_config = config.transport.websocket
    transport = WebSocketTransport(
        host=ws_config.host,
        port=ws_config.port,
        max_connections=ws_config.max_connections,
        max_message_bytes=ws_config.max_message_bytes,
        allowed_origins=ws_config.allowed_origins,
    )

    engine = PairingEngine(
        backend, transport, max_match_attempts=config.pairing.max_match_attempts
    )
    router = RelayRouter(backend, transport)
    coordinator = SessionCoordinator(
        backend,
        transport,
        engine,
        router,
        delete_profile_on_disconnect=config.pairing.delete_profile_on_disconnect,
    )

    return MatchmakerServer(
        config=config,
        backend=backend,
        transport=transport,
        coordinator=coordinator,
    )


async def start_server(config_path: Path | None = None) -> None:
    """Start the matchmaker and run until cancelled or interrupted.

    Args:
        config_path: Path to YAML config file (defaults + env if None or missing)

    Raises:
        StateBackendError: If the configured backend is unreachable
        OSError: If a port cannot be bound
    """
    config = MatchmakerConfig.from_yaml_with_defaults(config_path)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(
        "Loaded configuration",
        extra={"config_path": str(config_path) if config_path else None},
    )

    server = build_server(config)
    await server.start()

    try:
        await server.serve_forever()
    except asyncio.CancelledError:
        logger.info("Server loop cancelled")
    finally:
        await server.stop()


def main() -> None:
    """Entry point for the matchmaker server."""
    parser = argparse.ArgumentParser(description="Matchmaker signaling server")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to matchmaker config YAML file (defaults + environment if omitted)",
    )
    args = parser.parse_args()

    try:
        asyncio.run(start_server(args.config))
    except KeyboardInterrupt:
        logger.info("Matchmaker server interrupted")


if __name__ == "__main__":
    main()
