"""
WebSocket connection management.

Handles the socket lifecycle, the receive loop and the reconnect policy. The
socket itself is a collaborator: anything implementing `Transport` can stand
in for the websocket, which is how the tests drive the client.
"""

import asyncio
import functools
import logging
from typing import Awaitable, Callable, Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import ClientConfig, ServerConfig
from ..core.event_bus import EventBus, EventType
from ..core.state_machine import SessionState, SessionStateMachine
from ..exceptions import SessionDestroyedError
from ..game.client_state import ClientGameState
from ..logging_config import get_logger

logger = get_logger(__name__)

Frame = Union[bytes, str]


class Transport(Protocol):
    """Duplex frame stream; a websockets client connection satisfies it."""

    async def send(self, message: Frame) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self): ...


TransportFactory = Callable[[], Awaitable[Transport]]
MessageCallback = Callable[[Frame], Awaitable[None]]


async def open_websocket(server: ServerConfig) -> Transport:
    """Open a websocket to the configured server."""
    return await websockets.connect(server.url, origin=server.origin, max_size=None)


class ConnectionManager:
    """Manages the WebSocket connection of one client."""

    def __init__(
        self,
        config: ClientConfig,
        state_machine: SessionStateMachine,
        event_bus: EventBus,
        game_state: ClientGameState,
        transport_factory: Optional[TransportFactory] = None,
        log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ):
        self._config = config
        self._state_machine = state_machine
        self._event_bus = event_bus
        self._game_state = game_state
        self._transport_factory = transport_factory or functools.partial(open_websocket, config.server)
        self._log = log or logger
        self._transport: Optional[Transport] = None
        self._on_message: Optional[MessageCallback] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._intentional_disconnect = False
        self._finished = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        """Check if the socket is open."""
        return self._transport is not None and self._state_machine.is_open

    @property
    def is_destroyed(self) -> bool:
        return self._state_machine.is_destroyed

    def set_message_handler(self, callback: MessageCallback) -> None:
        """Register the coroutine that processes every incoming frame."""
        self._on_message = callback

    async def connect(self) -> bool:
        """
        Open the socket and start receiving.

        Returns:
            True if the socket opened

        Raises:
            SessionDestroyedError: If the session was destroyed
        """
        if self.is_destroyed:
            raise SessionDestroyedError("Session was destroyed, refusing to connect")

        if self.is_connected:
            self._log.warning("Already connected, disconnecting first")
            await self.disconnect()

        self._intentional_disconnect = False
        self._finished.clear()

        try:
            self._log.info(f"Connecting to {self._config.server.url}")
            transport = await self._transport_factory()
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._log.error(f"Connection failed: {e}")
            return False

        self._transport = transport
        self._state_machine.transition_to(SessionState.SOCKET_OPEN)
        self._log.info("WebSocket connected")
        self._event_bus.emit(EventType.OPEN, source="connection")

        self._receive_task = asyncio.create_task(self._receive_messages(transport))
        return True

    async def start(self) -> None:
        """Connect, falling back to the reconnect policy if the first attempt fails."""
        if not await self.connect():
            self._after_close()

    async def wait_finished(self) -> None:
        """Wait until the session is destroyed or closed for good."""
        await self._finished.wait()

    async def send(self, message: Frame) -> bool:
        """
        Send one frame.

        Returns:
            True if the frame was handed to the socket
        """
        if not self.is_connected:
            self._log.warning("Cannot send message: not connected")
            return False

        try:
            await self._transport.send(message)
            return True
        except (ConnectionClosed, OSError) as e:
            self._log.error(f"Failed to send message: {e}")
            return False

    async def disconnect(self) -> None:
        """Close the socket without reconnecting."""
        self._intentional_disconnect = True
        self._cancel_reconnect()
        transport = self._transport
        await self._close_transport()

        if self._receive_task and self._receive_task is not asyncio.current_task():
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        # The receive task may have been cancelled before it ever ran
        if transport is not None:
            self._handle_closed(transport)
        self._finished.set()

    async def destroy(self, reason: str) -> None:
        """Destroy the session: close the socket and never reconnect."""
        if self.is_destroyed:
            return

        self._log.warning(f"Destroying session: {reason}")
        self._state_machine.transition_to(SessionState.DESTROYED, {"reason": reason})
        self._event_bus.emit(EventType.DESTROY, {"reason": reason}, "connection")
        await self.disconnect()

    async def _close_transport(self) -> None:
        transport = self._transport
        if transport is None:
            return
        try:
            await transport.close()
        except (ConnectionClosed, OSError) as e:
            self._log.warning(f"Error closing websocket: {e}")

    async def _receive_messages(self, transport: Transport) -> None:
        """Background task to receive and route frames in arrival order."""
        self._log.info("Message receiver started")
        cancelled = False
        try:
            async for message in transport:
                self._event_bus.emit(EventType.RAW_MESSAGE, {"data": message}, "connection")
                if self._on_message:
                    await self._on_message(message)
        except ConnectionClosed as e:
            self._log.warning(f"Connection closed by server: {e}")
        except OSError as e:
            self._log.error(f"Connection lost: {e}")
        except asyncio.CancelledError:
            self._log.info("Message receiver cancelled")
            cancelled = True
            raise
        except Exception as e:
            self._log.error(f"Message receiver error: {e}")
        finally:
            self._handle_closed(transport)
            if not cancelled:
                self._after_close()

    def _handle_closed(self, transport: Transport) -> None:
        """Reset per-connection state once a socket is gone."""
        if self._transport is not transport:
            return

        self._transport = None
        self._game_state.reset_connection()
        self._event_bus.emit(EventType.CLOSE, source="connection")
        self._log.info("WebSocket disconnected")

        if not self.is_destroyed:
            self._state_machine.transition_to(SessionState.DISCONNECTED)

    def _should_reconnect(self) -> bool:
        return (
            self._config.session.reconnect
            and not self.is_destroyed
            and not self._intentional_disconnect
        )

    def _after_close(self) -> None:
        if self._should_reconnect():
            if self._reconnect_task is None or self._reconnect_task.done():
                self._reconnect_task = asyncio.create_task(self._reconnect_loop())
        else:
            self._finished.set()

    async def _reconnect_loop(self) -> None:
        """Retry after a fixed delay until a socket opens or reconnecting stops."""
        delay = self._config.session.reconnect_time
        while self._should_reconnect():
            self._log.info(f"Reconnecting in {delay:.1f}s")
            await asyncio.sleep(delay)
            if not self._should_reconnect() or self.is_connected:
                break
            if await self.connect():
                return

        if not self.is_connected:
            self._finished.set()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._reconnect_task = None
