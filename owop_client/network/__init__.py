"""Network layer for WebSocket communication."""

from .connection import ConnectionManager, Transport, open_websocket
from .handlers import MessageHandlers
from .message_sender import MessageSender

__all__ = [
    "ConnectionManager",
    "MessageHandlers",
    "MessageSender",
    "Transport",
    "open_websocket",
]
