"""SafePing: signaling relay and peer helpers for QR-initiated direct chats."""

__version__ = "0.1.0"
