"""Transport layer for participant connections.

Provides the abstraction the pairing core consumes and the WebSocket
implementation used by the server.
"""

from matchmaker.transport.base import Transport, TransportSession
from matchmaker.transport.websocket_transport import (
    WebSocketSession,
    WebSocketTransport,
)

__all__ = [
    "Transport",
    "TransportSession",
    "WebSocketSession",
    "WebSocketTransport",
]
