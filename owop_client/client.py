"""
Pixel world client.

Wires one session together: event bus, session state machine, chunk store,
player state, connection, frame handlers and the outgoing message sender.
Everything is owned by the Client instance; several clients can run side by
side in one process.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .chunk_manager import ChunkStore
from .config import ClientConfig, get_config
from .core.event_bus import Event, EventBus, EventType, Subscription
from .core.state_machine import SessionState, SessionStateMachine
from .exceptions import SessionDestroyedError
from .game.client_state import ClientGameState
from .logging_config import ClientLogAdapter, get_logger
from .network.connection import ConnectionManager, TransportFactory
from .network.handlers import CaptchaSolver, MessageHandlers
from .network.message_sender import ChatModifier, MessageSender

logger = get_logger(__name__)

ChunkKey = Tuple[int, int]


class Client:
    """
    One connection to a pixel world.

    Usage:
        client = Client(config)
        client.on(EventType.JOIN, lambda event: ...)
        await client.run()
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        captcha_solver: Optional[CaptchaSolver] = None,
        send_modifier: Optional[ChatModifier] = None,
        recv_modifier: Optional[ChatModifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or get_config()
        self.log = ClientLogAdapter(logger, self._log_id)

        self.event_bus = EventBus()
        self.state_machine = SessionStateMachine(self.event_bus)
        self.chunks = ChunkStore(self.config.protocol.chunk_size)
        self.game_state = ClientGameState(self.config.protocol.max_chat_buffer, clock)

        self.connection = ConnectionManager(
            self.config,
            self.state_machine,
            self.event_bus,
            self.game_state,
            transport_factory=transport_factory,
            log=self.log,
        )
        self.sender = MessageSender(
            self.connection, self.game_state, self.state_machine, self.config,
            send_modifier=send_modifier, log=self.log,
        )
        self.handlers = MessageHandlers(
            self.config,
            self.game_state,
            self.chunks,
            self.state_machine,
            self.event_bus,
            self.connection,
            self.sender,
            captcha_solver=captcha_solver,
            recv_modifier=recv_modifier,
            log=self.log,
        )
        self.connection.set_message_handler(self.handlers.handle_message)

        self._pending_chunks: Dict[ChunkKey, List[asyncio.Future]] = {}
        self.event_bus.subscribe(EventType.CHUNK, self._resolve_chunk_requests)
        self.event_bus.subscribe(EventType.CLOSE, self._on_close)
        self.event_bus.subscribe(EventType.DESTROY, self._on_destroy)

        if self.config.session.unsafe:
            self.log.warning("Using 'unsafe' option.")

    def _log_id(self):
        return self.config.session.client_id or self.game_state.player.id

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def player(self):
        return self.game_state.player

    @property
    def players(self):
        return self.game_state.players

    @property
    def state(self) -> SessionState:
        return self.state_machine.current_state

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def is_destroyed(self) -> bool:
        return self.state_machine.is_destroyed

    # =========================================================================
    # EVENTS
    # =========================================================================

    def on(self, event_type: EventType, handler: Callable[[Event], None]) -> Subscription:
        return self.event_bus.subscribe(event_type, handler)

    def once(self, event_type: EventType, handler: Callable[[Event], None]) -> Subscription:
        return self.event_bus.subscribe_once(event_type, handler)

    def off(self, event_type: EventType, handler: Callable[[Event], None]) -> None:
        self.event_bus.unsubscribe(event_type, handler)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def connect(self) -> bool:
        """Open the socket once, without the reconnect policy."""
        return await self.connection.connect()

    async def run(self) -> None:
        """Connect and return once the session is destroyed or closed for good."""
        await self.connection.start()
        await self.connection.wait_finished()

    async def close(self) -> None:
        """Leave the world and close the socket; the session may connect again."""
        await self.connection.disconnect()

    async def destroy(self, reason: str = "destroyed by client") -> None:
        """Close the socket for good."""
        await self.connection.destroy(reason)

    def _on_close(self, event: Event) -> None:
        self.handlers.cancel_pending()

    def _on_destroy(self, event: Event) -> None:
        reason = event.data.get("reason", "destroyed")
        for futures in self._pending_chunks.values():
            for future in futures:
                if not future.done():
                    future.set_exception(SessionDestroyedError(reason))
        self._pending_chunks.clear()

    # =========================================================================
    # WORLD
    # =========================================================================

    async def join_world(self, world: Optional[str] = None) -> bool:
        return await self.sender.join_world(world or self.config.session.world)

    async def move(self, x: int = 0, y: int = 0) -> bool:
        return await self.sender.move(x, y)

    async def set_pixel(
        self,
        x: Optional[int] = None,
        y: Optional[int] = None,
        color: Optional[Sequence[int]] = None,
        sneaky: bool = False,
    ) -> bool:
        return await self.sender.set_pixel(x, y, color, sneaky)

    async def set_tool(self, tool_id: int = 0) -> bool:
        return await self.sender.set_tool(tool_id)

    async def set_color(self, color: Sequence[int] = (0, 0, 0)) -> bool:
        return await self.sender.set_color(color)

    async def protect_chunk(self, chunk_x: int, chunk_y: int, state: bool = True) -> bool:
        return await self.sender.protect_chunk(chunk_x, chunk_y, state)

    async def clear_chunk(self, chunk_x: int, chunk_y: int, color: Optional[Sequence[int]] = None) -> bool:
        return await self.sender.clear_chunk(chunk_x, chunk_y, color)

    async def send_chat(self, message: str) -> bool:
        return await self.sender.send_chat(message)

    def local_message(self, text: str) -> None:
        """Log a line locally without sending it."""
        self.log.info(text)

    async def request_chunk(
        self,
        x: Optional[int] = None,
        y: Optional[int] = None,
        pixel_coords: bool = False,
        timeout: Optional[float] = None,
    ) -> bytearray:
        """
        Get a chunk, asking the server for it if it is not loaded yet.

        Args:
            x, y: Chunk coordinates, or pixel coordinates if pixel_coords is set.
                Defaults to the chunk under the cursor.
            pixel_coords: Treat x, y as pixel coordinates
            timeout: Seconds to wait for the server before giving up

        Returns:
            The loaded chunk buffer

        Raises:
            ValueError: If the chunk lies beyond the world border
            ConnectionError: If the request could not be sent
            SessionDestroyedError: If the session is destroyed while waiting
            asyncio.TimeoutError: If the timeout expires
        """
        if x is None or y is None:
            x, y, pixel_coords = self.player.x, self.player.y, True
        if pixel_coords:
            x, y = self.chunks.chunk_coords(x, y)

        chunk = self.chunks.get_chunk_raw(x, y)
        if chunk is not None:
            return chunk

        border = self.config.protocol.world_border
        if x > border or y > border or x < ~border or y < ~border:
            raise ValueError(f"chunk ({x}, {y}) is beyond the world border")
        if self.is_destroyed:
            raise SessionDestroyedError("Session was destroyed")

        future = asyncio.get_running_loop().create_future()
        key = (x, y)
        self._pending_chunks.setdefault(key, []).append(future)

        if not await self.sender.request_chunk(x, y):
            self._discard_request(key, future)
            raise ConnectionError(f"could not request chunk ({x}, {y}): not connected")

        try:
            if timeout is not None:
                return await asyncio.wait_for(future, timeout)
            return await future
        finally:
            self._discard_request(key, future)

    def _discard_request(self, key: ChunkKey, future: asyncio.Future) -> None:
        futures = self._pending_chunks.get(key)
        if futures and future in futures:
            futures.remove(future)
            if not futures:
                del self._pending_chunks[key]

    def _resolve_chunk_requests(self, event: Event) -> None:
        key = (event.data["x"], event.data["y"])
        futures = self._pending_chunks.pop(key, [])
        chunk = self.chunks.get_chunk_raw(*key)
        for future in futures:
            if not future.done():
                future.set_result(chunk)

    async def get_pixel(self, x: Optional[int] = None, y: Optional[int] = None, timeout: Optional[float] = None):
        """Read a pixel, loading its chunk first if needed."""
        x = self.player.x if x is None else x
        y = self.player.y if y is None else y
        if self.chunks.get_chunk(x, y) is None:
            await self.request_chunk(x, y, pixel_coords=True, timeout=timeout)
        return self.chunks.get_pixel(x, y)
