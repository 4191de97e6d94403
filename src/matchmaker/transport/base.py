"""Base transport abstraction for participant connections.

Defines the interface the pairing core consumes from a connection transport:
named-message delivery to an id, a per-connection stream of inbound named
messages, and liveness. The end of a session's inbound stream is the
disconnect signal.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any


class TransportSession(ABC):
    """Base class for transport-specific sessions.

    One session corresponds to one participant connection. The session id is
    assigned by the transport and is the participant id used by the core.
    """

    @abstractmethod
    async def send_event(self, event: str, payload: Any = None) -> None:
        """Send a named message to this participant.

        Args:
            event: Event name (e.g., "matched", "offer")
            payload: JSON-serializable payload, or None for no payload

        Raises:
            ConnectionError: If the connection is closed or broken
        """
        pass

    @abstractmethod
    async def receive_events(self) -> AsyncIterator[tuple[str, Any]]:
        """Receive named messages from the participant.

        Yields (event, payload) pairs in the order the transport delivered
        them. The iterator ends when the connection closes.

        Yields:
            tuple[str, Any]: Event name and raw payload
        """
        # Using yield to make this an async generator
        if False:
            yield ("", None)

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release transport resources."""
        pass

    @property
    @abstractmethod
    def session_id(self) -> str:
        """Unique session (participant) identifier."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the session connection is still active."""
        pass


class Transport(ABC):
    """Base transport implementation.

    Manages the lifecycle of a transport server, creates sessions for
    incoming connections, and routes outbound messages by participant id.
    """

    @abstractmethod
    async def start(self) -> None:
        """Start the transport server.

        Raises:
            RuntimeError: If the transport fails to start
            OSError: If port binding fails (for network transports)
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the transport server and close all sessions."""
        pass

    @abstractmethod
    async def accept_session(self) -> TransportSession:
        """Wait for and return the next new session.

        Raises:
            RuntimeError: If the transport is not running
        """
        pass

    @abstractmethod
    async def send(self, session_id: str, event: str, payload: Any = None) -> bool:
        """Send a named message to a participant by id.

        Never raises for an unknown or closed participant.

        Args:
            session_id: Target participant id
            event: Event name
            payload: JSON-serializable payload, or None

        Returns:
            True if the message was handed to the connection
        """
        pass

    @abstractmethod
    def is_connected(self, session_id: str) -> bool:
        """Check whether a participant id has a live connection."""
        pass

    @property
    @abstractmethod
    def transport_type(self) -> str:
        """Transport type identifier (e.g., 'websocket')."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        pass

    @property
    @abstractmethod
    def connection_count(self) -> int:
        """Number of currently registered sessions."""
        pass
