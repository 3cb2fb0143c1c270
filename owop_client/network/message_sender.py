"""
Message sender for client-to-server communication.

Each method checks that the session may send the message, encodes it and
hands it to the connection. Gated calls return False and send nothing.
"""

import logging
from typing import Callable, Optional, Sequence, Union

from .connection import ConnectionManager
from .. import protocol
from ..config import ClientConfig
from ..core.state_machine import SessionState, SessionStateMachine
from ..game.client_state import ClientGameState
from ..logging_config import get_logger
from ..protocol import Rank

logger = get_logger(__name__)

ChatModifier = Callable[[str], str]


class MessageSender:
    """Sends messages to the server with proper formatting."""

    def __init__(
        self,
        connection: ConnectionManager,
        game_state: ClientGameState,
        state_machine: SessionStateMachine,
        config: ClientConfig,
        send_modifier: Optional[ChatModifier] = None,
        log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ):
        self.connection = connection
        self.game_state = game_state
        self.state_machine = state_machine
        self.config = config
        self.send_modifier = send_modifier
        self._log = log or logger

    @property
    def player(self):
        return self.game_state.player

    def _may_modify_world(self) -> bool:
        """Admin-only messages need ADMIN rank unless running unsafe."""
        if not self.player.can_draw:
            return False
        return self.player.rank >= Rank.ADMIN or self.config.session.unsafe

    # =========================================================================
    # WORLD
    # =========================================================================

    async def join_world(self, world: str) -> bool:
        """Ask to join a world; the server answers with our player id."""
        if not self.connection.is_connected:
            return False

        name = protocol.sanitize_world_name(world)
        if not await self.connection.send(protocol.encode_join(name)):
            return False

        self._log.info(f"Joining world: {name}")
        self.game_state.world_name = name
        self.state_machine.transition_to(SessionState.AWAITING_ID, {"world": name})
        return True

    async def move(self, x: int, y: int) -> bool:
        """Move the cursor to tile (x, y)."""
        if not self.connection.is_connected:
            return False

        self.player.move_to(x, y)
        return await self.connection.send(
            protocol.encode_move(self.player.world_x, self.player.world_y, self.player.color, self.player.tool)
        )

    async def set_pixel(
        self,
        x: Optional[int] = None,
        y: Optional[int] = None,
        color: Optional[Sequence[int]] = None,
        sneaky: bool = False,
    ) -> bool:
        """
        Place one pixel, spending one unit of the pixel quota.

        Args:
            x, y: Pixel coordinates, defaulting to the cursor position
            color: RGB color, defaulting to the current color
            sneaky: Move the cursor back to where it was afterwards

        Returns:
            True if the placement was sent
        """
        x = self.player.x if x is None else x
        y = self.player.y if y is None else y
        color = tuple(self.player.color if color is None else color)

        if not self.connection.is_connected or not self.player.can_draw:
            return False
        if not self.game_state.bucket.can_spend(1):
            return False

        last_x, last_y = self.player.x, self.player.y
        await self.move(x, y)

        self.player.color = color
        sent = await self.connection.send(protocol.encode_set_pixel(x, y, color))

        if sneaky:
            await self.move(last_x, last_y)
        return sent

    async def set_tool(self, tool_id: int = 0) -> bool:
        if not self.connection.is_connected:
            return False

        self.player.tool = tool_id
        return await self.connection.send(
            protocol.encode_set_tool(self.player.world_x, self.player.world_y, self.player.color, tool_id)
        )

    async def set_color(self, color: Sequence[int] = (0, 0, 0)) -> bool:
        if not self.connection.is_connected:
            return False

        self.player.color = tuple(color)
        return await self.connection.send(
            protocol.encode_set_color(self.player.world_x, self.player.world_y, self.player.color, self.player.tool)
        )

    async def protect_chunk(self, chunk_x: int, chunk_y: int, state: bool = True) -> bool:
        """Lock or unlock a chunk (admin only)."""
        if not self.connection.is_connected or not self._may_modify_world():
            return False
        return await self.connection.send(protocol.encode_protect_chunk(chunk_x, chunk_y, state))

    async def clear_chunk(self, chunk_x: int, chunk_y: int, color: Optional[Sequence[int]] = None) -> bool:
        """Fill a chunk with one color (admin only)."""
        if not self.connection.is_connected or not self._may_modify_world():
            return False
        color = self.player.color if color is None else color
        return await self.connection.send(protocol.encode_clear_chunk(chunk_x, chunk_y, color))

    async def request_chunk(self, chunk_x: int, chunk_y: int) -> bool:
        if not self.connection.is_connected:
            return False
        return await self.connection.send(protocol.encode_request_chunk(chunk_x, chunk_y))

    # =========================================================================
    # TEXT
    # =========================================================================

    async def send_chat(self, message: str) -> bool:
        """Send a chat line, truncated to what our rank may send."""
        if not self.connection.is_connected or not self.player.rank_known:
            return False
        if self.send_modifier is not None:
            message = self.send_modifier(message)
        return await self.connection.send(protocol.encode_chat(message, self.player.rank))

    async def send_captcha_token(self, token: str) -> bool:
        return await self.connection.send(protocol.encode_captcha_token(token))

    async def send_captcha_pass(self, password: str) -> bool:
        return await self.connection.send(protocol.encode_captcha_pass(password))
