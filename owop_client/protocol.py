"""
Binary protocol definitions.

Server-to-client frames carry a one-byte opcode at offset 0. Client-to-server
frames carry no opcode; the server tells them apart by length. All multi-byte
integers are little-endian.
"""

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple, Union

from . import rle
from .constants import (
    CAPTCHA_PASS_PREFIX,
    CHAT_VERIFICATION,
    CHUNK_HEADER_SIZE,
    DEFAULT_CHUNK_SIZE,
    DISCONNECT_ENTRY_SIZE,
    MAX_MESSAGE_LENGTH,
    MAX_WORLD_NAME_LENGTH,
    PIXEL_ENTRY_SIZE,
    PLAYER_ENTRY_SIZE,
    TOKEN_VERIFICATION,
    WORLD_VERIFICATION,
)
from .exceptions import FrameDecodeError, RLEDecodeError

Color = Tuple[int, int, int]


class Opcode(IntEnum):
    SET_ID = 0
    WORLD_UPDATE = 1
    CHUNK_LOAD = 2
    TELEPORT = 3
    SET_RANK = 4
    CAPTCHA = 5
    SET_PQUOTA = 6
    CHUNK_PROTECTED = 7


class Rank(IntEnum):
    NONE = 0
    USER = 1
    MODERATOR = 2
    ADMIN = 3


class CaptchaState(IntEnum):
    WAITING = 0
    VERIFYING = 1
    VERIFIED = 2
    OK = 3
    INVALID = 4


# =============================================================================
# Wire layouts
# =============================================================================

_SET_ID = struct.Struct("<xI")
_CHUNK_HEADER = struct.Struct("<xiiB")
_TELEPORT = struct.Struct("<xii")
_BYTE_FIELD = struct.Struct("<xB")
_PQUOTA = struct.Struct("<xHH")
_CHUNK_PROTECTED = struct.Struct("<xiiB")

_PLAYER_ENTRY = struct.Struct("<IiiBBBB")
_PIXEL_ENTRY = struct.Struct("<4xiiBBB")
_UINT8 = struct.Struct("<B")
_UINT16 = struct.Struct("<H")
_UINT32 = struct.Struct("<I")

_MOVE = struct.Struct("<iiBBBB")
_SET_PIXEL = struct.Struct("<iiBBB")
_PROTECT_CHUNK = struct.Struct("<iiBx")
_CLEAR_CHUNK = struct.Struct("<iiBBB2x")
_REQUEST_CHUNK = struct.Struct("<ii")
_WORLD_VERIFICATION = struct.Struct("<H")

assert _PLAYER_ENTRY.size == PLAYER_ENTRY_SIZE
assert _PIXEL_ENTRY.size == PIXEL_ENTRY_SIZE


# =============================================================================
# Decoded frames
# =============================================================================

@dataclass
class PlayerUpdate:
    """One entry of the player block of a world update."""
    player_id: int
    world_x: int
    world_y: int
    color: Color
    tool: int

    @property
    def x(self) -> int:
        """Tile x coordinate."""
        return self.world_x >> 4

    @property
    def y(self) -> int:
        """Tile y coordinate."""
        return self.world_y >> 4


@dataclass
class PixelUpdate:
    x: int
    y: int
    color: Color


@dataclass
class SetIdFrame:
    player_id: int


@dataclass
class WorldUpdateFrame:
    players: List[PlayerUpdate] = field(default_factory=list)
    pixels: List[PixelUpdate] = field(default_factory=list)
    disconnects: List[int] = field(default_factory=list)


@dataclass
class ChunkLoadFrame:
    chunk_x: int
    chunk_y: int
    locked: bool
    data: bytearray


@dataclass
class TeleportFrame:
    x: int
    y: int


@dataclass
class SetRankFrame:
    rank: Rank


@dataclass
class CaptchaFrame:
    state: CaptchaState


@dataclass
class PQuotaFrame:
    rate: int
    period: int


@dataclass
class ChunkProtectedFrame:
    chunk_x: int
    chunk_y: int
    state: bool


Frame = Union[
    SetIdFrame,
    WorldUpdateFrame,
    ChunkLoadFrame,
    TeleportFrame,
    SetRankFrame,
    CaptchaFrame,
    PQuotaFrame,
    ChunkProtectedFrame,
]


# =============================================================================
# Decoding
# =============================================================================

def _unpack(layout: struct.Struct, data: bytes, offset: int, opcode: Opcode) -> tuple:
    """Unpack a fixed layout, failing closed on short buffers."""
    end = offset + layout.size
    if end > len(data):
        raise FrameDecodeError(
            f"{opcode.name} frame truncated: need {end} bytes, got {len(data)}",
            opcode=opcode,
        )
    return layout.unpack_from(data, offset)


def _decode_world_update(data: bytes) -> WorldUpdateFrame:
    opcode = Opcode.WORLD_UPDATE
    frame = WorldUpdateFrame()

    player_count = _unpack(_UINT8, data, 1, opcode)[0]
    offset = 2
    for _ in range(player_count):
        player_id, world_x, world_y, r, g, b, tool = _unpack(_PLAYER_ENTRY, data, offset, opcode)
        frame.players.append(PlayerUpdate(player_id, world_x, world_y, (r, g, b), tool))
        offset += PLAYER_ENTRY_SIZE

    pixel_count = _unpack(_UINT16, data, offset, opcode)[0]
    offset += 2
    for _ in range(pixel_count):
        x, y, r, g, b = _unpack(_PIXEL_ENTRY, data, offset, opcode)
        frame.pixels.append(PixelUpdate(x, y, (r, g, b)))
        offset += PIXEL_ENTRY_SIZE

    disconnect_count = _unpack(_UINT8, data, offset, opcode)[0]
    offset += 1
    for _ in range(disconnect_count):
        frame.disconnects.append(_unpack(_UINT32, data, offset, opcode)[0])
        offset += DISCONNECT_ENTRY_SIZE

    return frame


def _decode_chunk_load(data: bytes, chunk_size: int) -> ChunkLoadFrame:
    opcode = Opcode.CHUNK_LOAD
    chunk_x, chunk_y, locked = _unpack(_CHUNK_HEADER, data, 0, opcode)
    try:
        pixels = rle.decompress(data[CHUNK_HEADER_SIZE:])
    except RLEDecodeError as e:
        raise FrameDecodeError(f"chunk ({chunk_x}, {chunk_y}): {e}", opcode=opcode) from e

    expected = 3 * chunk_size * chunk_size
    if len(pixels) != expected:
        raise FrameDecodeError(
            f"chunk ({chunk_x}, {chunk_y}) decompressed to {len(pixels)} bytes, expected {expected}",
            opcode=opcode,
        )
    return ChunkLoadFrame(chunk_x, chunk_y, bool(locked), pixels)


def decode_frame(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Optional[Frame]:
    """
    Decode one binary server frame.

    Args:
        data: The complete frame, opcode included
        chunk_size: Chunk edge length used to validate chunk payloads

    Returns:
        The decoded frame, or None for an empty frame or unknown opcode

    Raises:
        FrameDecodeError: If the frame is truncated or carries invalid values
    """
    if not data:
        return None

    try:
        opcode = Opcode(data[0])
    except ValueError:
        return None

    if opcode is Opcode.SET_ID:
        return SetIdFrame(_unpack(_SET_ID, data, 0, opcode)[0])

    if opcode is Opcode.WORLD_UPDATE:
        return _decode_world_update(data)

    if opcode is Opcode.CHUNK_LOAD:
        return _decode_chunk_load(data, chunk_size)

    if opcode is Opcode.TELEPORT:
        x, y = _unpack(_TELEPORT, data, 0, opcode)
        return TeleportFrame(x, y)

    if opcode is Opcode.SET_RANK:
        value = _unpack(_BYTE_FIELD, data, 0, opcode)[0]
        try:
            return SetRankFrame(Rank(value))
        except ValueError:
            raise FrameDecodeError(f"unknown rank {value}", opcode=opcode) from None

    if opcode is Opcode.CAPTCHA:
        value = _unpack(_BYTE_FIELD, data, 0, opcode)[0]
        try:
            return CaptchaFrame(CaptchaState(value))
        except ValueError:
            raise FrameDecodeError(f"unknown captcha state {value}", opcode=opcode) from None

    if opcode is Opcode.SET_PQUOTA:
        rate, period = _unpack(_PQUOTA, data, 0, opcode)
        return PQuotaFrame(rate, period)

    # Opcode.CHUNK_PROTECTED
    chunk_x, chunk_y, state = _unpack(_CHUNK_PROTECTED, data, 0, opcode)
    return ChunkProtectedFrame(chunk_x, chunk_y, bool(state))


# =============================================================================
# Encoding
# =============================================================================

def sanitize_world_name(name: str) -> str:
    """Lowercase a world name, keep only [a-z0-9._] and cap its length."""
    name = name.lower()
    allowed = [c for c in name if ("a" <= c <= "z") or ("0" <= c <= "9") or c in "._"]
    return "".join(allowed[:MAX_WORLD_NAME_LENGTH])


def encode_join(world_name: str) -> bytes:
    """World join request: sanitized name followed by the verification word."""
    return sanitize_world_name(world_name).encode("ascii") + _WORLD_VERIFICATION.pack(WORLD_VERIFICATION)


def encode_move(world_x: int, world_y: int, color: Sequence[int], tool: int) -> bytes:
    """Cursor update in world units (1/16 pixel)."""
    return _MOVE.pack(world_x, world_y, color[0], color[1], color[2], tool)


# Tool and color changes reuse the cursor update layout
encode_set_tool = encode_move
encode_set_color = encode_move


def encode_set_pixel(x: int, y: int, color: Sequence[int]) -> bytes:
    return _SET_PIXEL.pack(x, y, color[0], color[1], color[2])


def encode_protect_chunk(chunk_x: int, chunk_y: int, state: bool) -> bytes:
    return _PROTECT_CHUNK.pack(chunk_x, chunk_y, 1 if state else 0)


def encode_clear_chunk(chunk_x: int, chunk_y: int, color: Sequence[int]) -> bytes:
    """Fill a whole chunk with one color (admin only)."""
    return _CLEAR_CHUNK.pack(chunk_x, chunk_y, color[0], color[1], color[2])


def encode_request_chunk(chunk_x: int, chunk_y: int) -> bytes:
    return _REQUEST_CHUNK.pack(chunk_x, chunk_y)


def encode_chat(message: str, rank: Rank) -> str:
    """Chat text frame, truncated to what the rank may send."""
    limit = MAX_MESSAGE_LENGTH[int(rank)]
    return message[:limit] + CHAT_VERIFICATION


def encode_captcha_token(token: str) -> str:
    """Text frame answering a captcha challenge with a solver token."""
    return TOKEN_VERIFICATION + token


def encode_captcha_pass(password: str) -> str:
    """Text frame skipping the captcha with a server-issued pass."""
    return TOKEN_VERIFICATION + CAPTCHA_PASS_PREFIX + password
