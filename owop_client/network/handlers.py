"""
Message handlers for server-to-client frames.

Binary frames are decoded and dispatched by frame type; each handler updates
the chunk store or session state and then notifies the event bus. Text frames
are chat lines or server notices.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .connection import ConnectionManager
from .message_sender import ChatModifier, MessageSender
from ..chunk_manager import ChunkStore
from ..config import ClientConfig
from ..constants import BAN_MESSAGE_PREFIX, DEV_MESSAGE_PREFIX, HTML_MESSAGE_PREFIX
from ..core.event_bus import EventBus, EventType
from ..core.state_machine import SessionState, SessionStateMachine
from ..exceptions import FrameDecodeError
from ..game.client_state import ClientGameState
from ..logging_config import get_logger
from ..protocol import (
    CaptchaFrame,
    CaptchaState,
    ChunkLoadFrame,
    ChunkProtectedFrame,
    PQuotaFrame,
    Rank,
    SetIdFrame,
    SetRankFrame,
    TeleportFrame,
    WorldUpdateFrame,
    decode_frame,
)

logger = get_logger(__name__)

CaptchaSolver = Callable[[], Awaitable[str]]

CAPTCHA_TRANSITIONS = {
    CaptchaState.WAITING: SessionState.CAPTCHA_WAITING,
    CaptchaState.VERIFYING: SessionState.CAPTCHA_VERIFYING,
    CaptchaState.VERIFIED: SessionState.CAPTCHA_VERIFIED,
    CaptchaState.OK: SessionState.CAPTCHA_OK,
    CaptchaState.INVALID: SessionState.CAPTCHA_INVALID,
}


class MessageHandlers:
    """Container for all frame handlers of one client."""

    def __init__(
        self,
        config: ClientConfig,
        game_state: ClientGameState,
        chunks: ChunkStore,
        state_machine: SessionStateMachine,
        event_bus: EventBus,
        connection: ConnectionManager,
        sender: MessageSender,
        captcha_solver: Optional[CaptchaSolver] = None,
        recv_modifier: Optional[ChatModifier] = None,
        log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ):
        self.config = config
        self.game_state = game_state
        self.chunks = chunks
        self.state_machine = state_machine
        self.event_bus = event_bus
        self.connection = connection
        self.sender = sender
        self.captcha_solver = captcha_solver
        self.recv_modifier = recv_modifier
        self._log = log or logger
        self._captcha_task: Optional[asyncio.Task] = None
        self._frame_handlers: Dict[type, Callable[[Any], Awaitable[None]]] = {
            SetIdFrame: self.handle_set_id,
            WorldUpdateFrame: self.handle_world_update,
            ChunkLoadFrame: self.handle_chunk_load,
            TeleportFrame: self.handle_teleport,
            SetRankFrame: self.handle_set_rank,
            CaptchaFrame: self.handle_captcha,
            PQuotaFrame: self.handle_pquota,
            ChunkProtectedFrame: self.handle_chunk_protected,
        }

    # =================================================================
    # DISPATCH
    # =================================================================

    async def handle_message(self, message: Union[bytes, str]) -> None:
        """Route one incoming frame to its handler."""
        try:
            if isinstance(message, str):
                await self.handle_text(message)
            else:
                await self.handle_binary(bytes(message))
        except Exception:
            self._log.exception("Error in message handler")

    async def handle_binary(self, data: bytes) -> None:
        try:
            frame = decode_frame(data, self.chunks.chunk_size)
        except FrameDecodeError as e:
            self._log.error(f"Dropping malformed frame: {e}")
            self.event_bus.emit(
                EventType.DECODE_ERROR,
                {"error": e, "opcode": e.opcode, "data": data},
                "handlers",
            )
            return

        if frame is None:
            self._log.debug(f"Ignoring frame with unknown opcode {data[:1].hex() or '<empty>'}")
            return

        await self._frame_handlers[type(frame)](frame)

    # =================================================================
    # BINARY FRAME HANDLERS
    # =================================================================

    async def handle_set_id(self, frame: SetIdFrame) -> None:
        """Our player id arrived: the world join is complete."""
        player = self.game_state.player
        player.id = frame.player_id
        if player.rank is None:
            player.rank = Rank.NONE

        self.state_machine.transition_to(SessionState.WORLD_JOINED, {"player_id": frame.player_id})
        self._log.info(f"Joined world '{self.game_state.world_name}' and got id '{frame.player_id}'")
        self.event_bus.emit(EventType.ID, {"player_id": frame.player_id}, "handlers")

        credentials = self.config.credentials
        if credentials.admin_login:
            await self.sender.send_chat(f"/adminlogin {credentials.admin_login}")
        if credentials.mod_login:
            await self.sender.send_chat(f"/modlogin {credentials.mod_login}")
        if credentials.world_pass:
            await self.sender.send_chat(f"/pass {credentials.world_pass}")

        self.event_bus.emit(EventType.JOIN, {"world": self.game_state.world_name}, "handlers")

    async def handle_world_update(self, frame: WorldUpdateFrame) -> None:
        """Apply player moves, pixel changes and disconnects, in that order."""
        own_id = self.game_state.player.id

        for update in frame.players:
            if update.player_id == own_id:
                continue
            remote, is_new = self.game_state.upsert_player(update)
            if is_new:
                self.event_bus.emit(EventType.CONNECT, {"player_id": remote.id}, "handlers")
            self.event_bus.emit(EventType.UPDATE, {"player": remote}, "handlers")

        for pixel in frame.pixels:
            self.chunks.set_pixel(pixel.x, pixel.y, pixel.color)
            self.event_bus.emit(EventType.PIXEL, {"x": pixel.x, "y": pixel.y, "color": pixel.color}, "handlers")

        for player_id in frame.disconnects:
            remote = self.game_state.remove_player(player_id)
            if remote is not None:
                self.event_bus.emit(EventType.DISCONNECT, {"player": remote}, "handlers")

    async def handle_chunk_load(self, frame: ChunkLoadFrame) -> None:
        self.chunks.set_chunk(frame.chunk_x, frame.chunk_y, frame.data)
        if frame.locked:
            self.chunks.protect(frame.chunk_x, frame.chunk_y)
        else:
            self.chunks.unprotect(frame.chunk_x, frame.chunk_y)

        self._log.debug(f"Stored chunk ({frame.chunk_x}, {frame.chunk_y}), locked={frame.locked}")
        self.event_bus.emit(
            EventType.CHUNK,
            {"x": frame.chunk_x, "y": frame.chunk_y, "data": bytes(frame.data), "locked": frame.locked},
            "handlers",
        )

    async def handle_teleport(self, frame: TeleportFrame) -> None:
        if not self.config.session.teleport:
            self._log.debug(f"Ignoring teleport to ({frame.x}, {frame.y})")
            return

        await self.sender.move(frame.x, frame.y)
        self.event_bus.emit(EventType.TELEPORT, {"x": frame.x, "y": frame.y}, "handlers")

    async def handle_set_rank(self, frame: SetRankFrame) -> None:
        self.game_state.player.rank = frame.rank
        self._log.info(f"Got rank {frame.rank.name}")
        self.event_bus.emit(EventType.RANK, {"rank": frame.rank}, "handlers")

    async def handle_captcha(self, frame: CaptchaFrame) -> None:
        state = frame.state
        self.game_state.captcha_state = state
        self._log.info(f"CaptchaState: {state.name} ({int(state)})")
        self.state_machine.transition_to(CAPTCHA_TRANSITIONS[state])

        if state == CaptchaState.WAITING:
            await self._answer_captcha()
        elif state == CaptchaState.OK:
            await self.sender.join_world(self.config.session.world)
        elif state == CaptchaState.INVALID:
            self._log.error("Captcha failed. Websocket is invalid now.")
            await self.connection.destroy("captcha invalid")

        self.event_bus.emit(EventType.CAPTCHA, {"state": state}, "handlers")

    async def handle_pquota(self, frame: PQuotaFrame) -> None:
        try:
            self.game_state.replace_bucket(frame.rate, frame.period)
        except ValueError as e:
            self._log.warning(f"Ignoring PQuota {frame.rate}x{frame.period}: {e}")
            return

        self._log.info(f"New PQuota: {frame.rate}x{frame.period}")
        self.event_bus.emit(EventType.PQUOTA, {"rate": frame.rate, "period": frame.period}, "handlers")

    async def handle_chunk_protected(self, frame: ChunkProtectedFrame) -> None:
        if frame.state:
            self.chunks.protect(frame.chunk_x, frame.chunk_y)
        else:
            self.chunks.unprotect(frame.chunk_x, frame.chunk_y)

        self.event_bus.emit(
            EventType.CHUNK_PROTECT,
            {"x": frame.chunk_x, "y": frame.chunk_y, "state": frame.state},
            "handlers",
        )

    # =================================================================
    # TEXT
    # =================================================================

    async def handle_text(self, text: str) -> None:
        if text.startswith(BAN_MESSAGE_PREFIX):
            self._log.error("Got ban message.")
            await self.connection.destroy("banned")
            return

        if text.startswith(DEV_MESSAGE_PREFIX):
            self._log.info(f"[DEV] {text[len(DEV_MESSAGE_PREFIX):]}")
        if text.startswith(HTML_MESSAGE_PREFIX):
            return

        if self.recv_modifier is not None:
            text = self.recv_modifier(text)
        self.game_state.add_message(text)
        self._log.info(text)
        self.event_bus.emit(EventType.MESSAGE, {"text": text}, "handlers")

    # =================================================================
    # CAPTCHA
    # =================================================================

    async def _answer_captcha(self) -> None:
        captcha_pass = self.config.credentials.captcha_pass
        if captcha_pass:
            await self.sender.send_captcha_pass(captcha_pass)
            self._log.info("Used captchapass.")
        elif self.captcha_solver is not None:
            if self._captcha_task is None or self._captcha_task.done():
                self._captcha_task = asyncio.create_task(self._solve_captcha())
        else:
            self._log.warning("Captcha required but no captcha pass or solver configured")

    async def _solve_captcha(self) -> None:
        """Wait for the external solver, then answer if the server still waits."""
        try:
            token = await self.captcha_solver()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._log.exception("Captcha solver failed")
            return

        if self.state_machine.current_state != SessionState.CAPTCHA_WAITING:
            self._log.info("Discarding captcha token: server no longer waiting")
            return
        await self.sender.send_captcha_token(token)

    def cancel_pending(self) -> None:
        """Drop an in-flight captcha solve when the socket goes away."""
        if self._captcha_task and not self._captcha_task.done():
            self._captcha_task.cancel()
        self._captcha_task = None
