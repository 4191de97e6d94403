"""WebSocket transport implementation.

Provides the long-lived bidirectional message channels participants use to
talk to the matchmaker. Each connection gets an opaque id and exchanges JSON
envelopes of the form {"event": ..., "data": ...}.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any

import websockets
from pydantic import ValidationError
from websockets.asyncio.server import ServerConnection, serve
from websockets.protocol import State

from matchmaker.transport.base import Transport, TransportSession
from matchmaker.transport.websocket_protocol import (
    EVENT_CONNECTED,
    EVENT_ERROR,
    Envelope,
    encode_event,
)

logger = logging.getLogger(__name__)

# Close code for "try again later" (server overloaded)
CLOSE_TRY_AGAIN_LATER = 1013


class WebSocketSession(TransportSession):
    """WebSocket-based participant session.

    Implements the TransportSession interface for WebSocket connections,
    handling JSON envelope serialization.
    """

    def __init__(self, websocket: ServerConnection, session_id: str) -> None:
        """Initialize WebSocket session.

        Args:
            websocket: WebSocket connection
            session_id: Unique session identifier
        """
        self._websocket = websocket
        self._session_id = session_id
        self._connected = True

        logger.info(
            "WebSocket session initialized",
            extra={"session_id": session_id, "remote": websocket.remote_address},
        )

    @property
    def session_id(self) -> str:
        """Get unique session identifier."""
        return self._session_id

    @property
    def is_connected(self) -> bool:
        """Check if the session connection is still active."""
        return self._connected and self._websocket.state == State.OPEN

    async def send_event(self, event: str, payload: Any = None) -> None:
        """Send a named message to the participant.

        Args:
            event: Event name
            payload: JSON-serializable payload, or None

        Raises:
            ConnectionError: If the connection is closed or broken
        """
        if not self.is_connected:
            raise ConnectionError("WebSocket connection is closed")

        try:
            await self._websocket.send(encode_event(event, payload))
            logger.debug(
                "Event sent",
                extra={"session_id": self._session_id, "event": event},
            )
        except websockets.exceptions.ConnectionClosed as e:
            self._connected = False
            raise ConnectionError(f"WebSocket connection closed: {e}") from e

    async def receive_events(self) -> AsyncIterator[tuple[str, Any]]:
        """Receive named messages from the participant.

        Malformed frames are answered with an "error" event and skipped.
        The iterator ends when the client disconnects.

        Yields:
            tuple[str, Any]: Event name and raw payload
        """
        try:
            async for raw_message in self._websocket:
                if not isinstance(raw_message, str):
                    logger.warning(
                        "Received non-text WebSocket message, skipping",
                        extra={"session_id": self._session_id},
                    )
                    continue

                try:
                    envelope = Envelope.model_validate(json.loads(raw_message))
                except json.JSONDecodeError as e:
                    logger.warning(
                        "Invalid JSON message",
                        extra={"session_id": self._session_id, "error": str(e)},
                    )
                    await self._send_error(f"Invalid JSON: {e}")
                    continue
                except ValidationError as e:
                    logger.warning(
                        "Invalid message envelope",
                        extra={"session_id": self._session_id, "error": str(e)},
                    )
                    await self._send_error("Message must be an object with an 'event' name")
                    continue

                yield envelope.event, envelope.data

        except websockets.exceptions.ConnectionClosed:
            logger.info(
                "WebSocket connection closed by client",
                extra={"session_id": self._session_id},
            )
        finally:
            self._connected = False

    async def send_connected(self) -> None:
        """Tell the client which participant id it was assigned."""
        await self._send_quietly(EVENT_CONNECTED, {"id": self._session_id})

    async def _send_error(self, error_msg: str, code: str = "INVALID_FRAME") -> None:
        """Send error message to client."""
        await self._send_quietly(EVENT_ERROR, {"message": error_msg, "code": code})

    async def _send_quietly(self, event: str, payload: Any) -> None:
        if not self.is_connected:
            return

        try:
            await self._websocket.send(encode_event(event, payload))
        except Exception as e:
            logger.error(
                "Failed to send message",
                extra={"session_id": self._session_id, "event": event, "error": str(e)},
            )

    async def close(self) -> None:
        """Close the WebSocket connection."""
        if not self._connected:
            return

        logger.info("Closing WebSocket session", extra={"session_id": self._session_id})

        try:
            await self._websocket.close()
        except Exception as e:
            logger.warning(
                "Error during session close",
                extra={"session_id": self._session_id, "error": str(e)},
            )
        finally:
            self._connected = False


class WebSocketTransport(Transport):
    """WebSocket transport server.

    Manages WebSocket server lifecycle, creates WebSocketSession instances
    for incoming connections and keeps the id → session registry used to
    route outbound messages.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
        max_connections: int = 1000,
        max_message_bytes: int = 65536,
        allowed_origins: list[str] | None = None,
    ) -> None:
        """Initialize WebSocket transport.

        Args:
            host: Bind host address
            port: Bind port
            max_connections: Maximum concurrent connections
            max_message_bytes: Maximum inbound frame size
            allowed_origins: Origins accepted on handshake (None or empty = any)
        """
        self._host = host
        self._port = port
        self._max_connections = max_connections
        self._max_message_bytes = max_message_bytes
        self._allowed_origins = list(allowed_origins or [])
        self._server: Any = None  # websockets Server
        self._running = False
        self._sessions: dict[str, WebSocketSession] = {}
        self._session_queue: asyncio.Queue[WebSocketSession] = asyncio.Queue()

        logger.info(
            "WebSocket transport initialized",
            extra={"host": host, "port": port, "max_connections": max_connections},
        )

    @property
    def transport_type(self) -> str:
        """Transport type identifier."""
        return "websocket"

    @property
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        return self._running

    @property
    def connection_count(self) -> int:
        """Number of currently registered sessions."""
        return len(self._sessions)

    @property
    def port(self) -> int:
        """Bound port (the real port when configured with 0)."""
        if self._server is not None:
            for sock in self._server.sockets:
                return int(sock.getsockname()[1])
        return self._port

    async def start(self) -> None:
        """Start the WebSocket server.

        Raises:
            RuntimeError: If the transport fails to start
            OSError: If port binding fails
        """
        if self._running:
            raise RuntimeError("WebSocket transport is already running")

        logger.info(
            "Starting WebSocket server", extra={"host": self._host, "port": self._port}
        )

        try:
            self._server = await serve(
                self._handle_connection,
                self._host,
                self._port,
                max_size=self._max_message_bytes,
                origins=self._allowed_origins or None,
            )
            self._running = True

            logger.info(
                "WebSocket server started",
                extra={"host": self._host, "port": self.port},
            )

        except OSError as e:
            logger.error(
                "Failed to bind WebSocket server",
                extra={"host": self._host, "port": self._port, "error": str(e)},
            )
            raise
        except Exception as e:
            logger.error(
                "Failed to start WebSocket server",
                extra={"error": str(e)},
            )
            raise RuntimeError(f"Failed to start WebSocket transport: {e}") from e

    async def stop(self) -> None:
        """Stop the WebSocket server, closing every open connection."""
        if not self._running:
            return

        logger.info("Stopping WebSocket server")

        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._sessions.clear()
        logger.info("WebSocket server stopped")

    async def accept_session(self) -> TransportSession:
        """Wait for the next new session.

        Raises:
            RuntimeError: If the transport is not running
        """
        if not self._running:
            raise RuntimeError("WebSocket transport is not running")

        return await self._session_queue.get()

    async def send(self, session_id: str, event: str, payload: Any = None) -> bool:
        """Send a named message to a participant by id."""
        session = self._sessions.get(session_id)
        if session is None or not session.is_connected:
            logger.debug(
                "Dropping event for unknown or closed session",
                extra={"session_id": session_id, "event": event},
            )
            return False

        try:
            await session.send_event(event, payload)
            return True
        except ConnectionError as e:
            logger.debug(
                "Send failed, peer went away",
                extra={"session_id": session_id, "event": event, "error": str(e)},
            )
            return False

    def is_connected(self, session_id: str) -> bool:
        """Check whether a participant id has a live connection."""
        session = self._sessions.get(session_id)
        return session is not None and session.is_connected

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Handle incoming WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        if len(self._sessions) >= self._max_connections:
            logger.warning(
                "Connection limit reached, rejecting client",
                extra={"remote": websocket.remote_address, "limit": self._max_connections},
            )
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server is full")
            return

        session_id = f"ws-{uuid.uuid4().hex[:12]}"

        logger.info(
            "New WebSocket connection",
            extra={
                "session_id": session_id,
                "remote": websocket.remote_address,
            },
        )

        session = WebSocketSession(websocket, session_id)
        self._sessions[session_id] = session

        await session.send_connected()

        # Queue session for the coordinator to accept
        await self._session_queue.put(session)

        # Keep the handler alive until the connection closes
        try:
            await websocket.wait_closed()
        except Exception as e:
            logger.error(
                "Error in connection handler",
                extra={"session_id": session_id, "error": str(e)},
            )
        finally:
            self._sessions.pop(session_id, None)
            logger.info(
                "WebSocket connection closed",
                extra={"session_id": session_id},
            )
