"""Socket.IO signaling relay for meeting rooms: presence and chat fan-out."""

__version__ = "1.0.0"
