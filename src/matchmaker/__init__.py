"""Matchmaker module for anonymous realtime peer pairing.

This module provides the pairing engine, signaling relay, state backends and
transport layer for matching two participants and relaying the handshake
messages they need to open a direct WebRTC connection.
"""

__version__ = "0.1.0"
