"""Client for the binary pixel world protocol."""

from .chunk_manager import ChunkStore
from .client import Client
from .config import ClientConfig, get_config
from .core import EventBus, EventType, Event, SessionState, SessionStateMachine
from .exceptions import (
    FrameDecodeError,
    OwopClientError,
    ProtocolError,
    RLEDecodeError,
    SessionDestroyedError,
)
from .protocol import CaptchaState, Opcode, Rank, decode_frame
from .rate_limiter import Bucket
from .rle import decompress

__all__ = [
    "Bucket",
    "CaptchaState",
    "ChunkStore",
    "Client",
    "ClientConfig",
    "Event",
    "EventBus",
    "EventType",
    "FrameDecodeError",
    "Opcode",
    "OwopClientError",
    "ProtocolError",
    "RLEDecodeError",
    "Rank",
    "SessionDestroyedError",
    "SessionState",
    "SessionStateMachine",
    "decode_frame",
    "decompress",
    "get_config",
]

__version__ = "1.0.0"
