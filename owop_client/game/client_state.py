"""
Client-side session state.

Holds the local player, the other players seen in the world, and the chat
backlog. Updated only from the frame processing path.
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple

from ..constants import (
    DEFAULT_PQUOTA_PERIOD,
    DEFAULT_PQUOTA_RATE,
    MAX_CHAT_BUFFER,
    WORLD_UNITS_PER_PIXEL,
)
from ..protocol import CaptchaState, PlayerUpdate, Rank
from ..rate_limiter import Bucket

Color = Tuple[int, int, int]


@dataclass
class Player:
    """The local player."""
    id: Optional[int] = None
    x: int = 0
    y: int = 0
    world_x: int = 0
    world_y: int = 0
    color: Color = (0, 0, 0)
    tool: int = 0
    rank: Optional[Rank] = None

    def move_to(self, x: int, y: int) -> None:
        """Set tile position, keeping world units in sync."""
        self.x = x
        self.y = y
        self.world_x = x * WORLD_UNITS_PER_PIXEL
        self.world_y = y * WORLD_UNITS_PER_PIXEL

    @property
    def rank_known(self) -> bool:
        return self.rank is not None

    @property
    def can_draw(self) -> bool:
        """Pixel placement needs a known rank above NONE."""
        return self.rank is not None and self.rank != Rank.NONE


@dataclass
class RemotePlayer:
    """Another player in the world, positioned in tile coordinates."""
    id: int
    x: int
    y: int
    color: Color
    tool: int

    @classmethod
    def from_update(cls, update: PlayerUpdate) -> "RemotePlayer":
        return cls(id=update.player_id, x=update.x, y=update.y, color=update.color, tool=update.tool)


class ClientGameState:
    """
    Central session state for one client.

    Owns the local player and the remote player mapping exclusively.
    """

    def __init__(self, max_chat_buffer: int = MAX_CHAT_BUFFER, clock: Callable[[], float] = time.monotonic):
        self.player = Player()
        self.players: Dict[int, RemotePlayer] = {}
        self.world_name: Optional[str] = None
        self.captcha_state: Optional[CaptchaState] = None
        self.messages: Deque[str] = deque(maxlen=max_chat_buffer)
        self._clock = clock
        self.bucket = Bucket(DEFAULT_PQUOTA_RATE, DEFAULT_PQUOTA_PERIOD, clock=clock)

    def replace_bucket(self, rate: int, period: int) -> Bucket:
        """Install a fresh pixel quota; unused allowance of the old one is dropped."""
        self.bucket = Bucket(rate, period, clock=self._clock)
        return self.bucket

    def upsert_player(self, update: PlayerUpdate) -> Tuple[RemotePlayer, bool]:
        """
        Apply a player update.

        Returns:
            The stored player and whether it was seen for the first time
        """
        remote = self.players.get(update.player_id)
        if remote is None:
            remote = RemotePlayer.from_update(update)
            self.players[update.player_id] = remote
            return remote, True

        remote.x = update.x
        remote.y = update.y
        remote.color = update.color
        remote.tool = update.tool
        return remote, False

    def remove_player(self, player_id: int) -> Optional[RemotePlayer]:
        return self.players.pop(player_id, None)

    def add_message(self, text: str) -> None:
        """Append a chat line, dropping the oldest once the backlog is full."""
        self.messages.append(text)

    def recent_messages(self, count: Optional[int] = None) -> List[str]:
        messages = list(self.messages)
        if count is None:
            return messages
        return messages[-count:] if count > 0 else []

    def reset_connection(self) -> None:
        """Forget everything tied to the closed socket."""
        self.players.clear()
        self.captcha_state = None
        self.player.id = None
        self.player.rank = None
