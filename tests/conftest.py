"""
Shared test fixtures.

Provides a deterministic clock, an in-memory transport standing in for the
websocket, and builders for server frames and compressed chunk payloads.
"""

import asyncio
import struct
from typing import List, Sequence, Tuple

import pytest
import pytest_asyncio

from owop_client.client import Client
from owop_client.config import ClientConfig


# =============================================================================
# Time
# =============================================================================

class FrozenTime:
    """
    Time controller for deterministic testing.

    Pass `frozen.now` wherever a clock is expected and advance it
    programmatically.
    """

    def __init__(self, initial_timestamp: float = 0.0):
        self._timestamp = initial_timestamp

    def now(self) -> float:
        """Get current frozen timestamp."""
        return self._timestamp

    def advance(self, seconds: float) -> None:
        """Advance time by specified seconds."""
        self._timestamp += seconds


@pytest.fixture
def frozen_time() -> FrozenTime:
    return FrozenTime()


# =============================================================================
# Transport
# =============================================================================

_CLOSED = object()


class FakeTransport:
    """
    In-memory duplex frame stream.

    Frames pushed with `deliver` are consumed by the client's receive loop;
    `deliver` returns once the client has finished processing them.
    """

    def __init__(self):
        self.sent: List[object] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()
        self._taken = False

    async def send(self, message) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._taken:
            self._incoming.task_done()
            self._taken = False
        message = await self._incoming.get()
        if message is _CLOSED:
            self._incoming.task_done()
            raise StopAsyncIteration
        self._taken = True
        return message

    async def deliver(self, *messages) -> None:
        """Push frames and wait until the client has handled all of them."""
        for message in messages:
            self._incoming.put_nowait(message)
        await self._incoming.join()

    async def server_close(self) -> None:
        """Close the stream from the server side."""
        await self.close()
        await self._incoming.join()

    @property
    def sent_binary(self) -> List[bytes]:
        return [m for m in self.sent if isinstance(m, (bytes, bytearray))]

    @property
    def sent_text(self) -> List[str]:
        return [m for m in self.sent if isinstance(m, str)]


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle_loop():
    return settle


# =============================================================================
# Frame builders
# =============================================================================

class FrameBuilder:
    """Builds server-to-client frames byte by byte."""

    @staticmethod
    def compress(segments: Sequence[tuple]) -> bytes:
        """
        Build a compressed chunk payload.

        Segments are ("lit", raw_bytes) or ("rep", count, (r, g, b)).
        """
        data = bytearray()
        offsets = []
        length = 0
        for segment in segments:
            if segment[0] == "lit":
                data += segment[1]
                length += len(segment[1])
            else:
                _, count, color = segment
                offsets.append(len(data))
                data += struct.pack("<HBBB", count, *color)
                length += 3 * count
        header = struct.pack("<HH", length, len(offsets))
        header += b"".join(struct.pack("<H", offset) for offset in offsets)
        return header + bytes(data)

    @staticmethod
    def expand(segments: Sequence[tuple]) -> bytes:
        """Reference expansion of the same segments."""
        out = bytearray()
        for segment in segments:
            if segment[0] == "lit":
                out += segment[1]
            else:
                _, count, color = segment
                out += bytes(color) * count
        return bytes(out)

    @staticmethod
    def set_id(player_id: int) -> bytes:
        return struct.pack("<BI", 0, player_id)

    @staticmethod
    def world_update(
        players: Sequence[Tuple[int, int, int, Tuple[int, int, int], int]] = (),
        pixels: Sequence[Tuple[int, int, Tuple[int, int, int]]] = (),
        disconnects: Sequence[int] = (),
    ) -> bytes:
        frame = struct.pack("<BB", 1, len(players))
        for player_id, world_x, world_y, color, tool in players:
            frame += struct.pack("<IiiBBBB", player_id, world_x, world_y, *color, tool)
        frame += struct.pack("<H", len(pixels))
        for x, y, color in pixels:
            frame += struct.pack("<IiiBBB", 0xDEADBEEF, x, y, *color)
        frame += struct.pack("<B", len(disconnects))
        for player_id in disconnects:
            frame += struct.pack("<I", player_id)
        return frame

    @staticmethod
    def chunk_load(chunk_x: int, chunk_y: int, payload: bytes, locked: bool = False) -> bytes:
        return struct.pack("<BiiB", 2, chunk_x, chunk_y, 1 if locked else 0) + payload

    @classmethod
    def solid_chunk(cls, chunk_x: int, chunk_y: int, color=(255, 255, 255), locked: bool = False,
                    chunk_size: int = 16) -> bytes:
        return cls.chunk_load(chunk_x, chunk_y, cls.compress([("rep", chunk_size * chunk_size, color)]), locked)

    @staticmethod
    def teleport(x: int, y: int) -> bytes:
        return struct.pack("<Bii", 3, x, y)

    @staticmethod
    def set_rank(rank: int) -> bytes:
        return bytes([4, rank])

    @staticmethod
    def captcha(state: int) -> bytes:
        return bytes([5, state])

    @staticmethod
    def pquota(rate: int, period: int) -> bytes:
        return struct.pack("<BHH", 6, rate, period)

    @staticmethod
    def chunk_protected(chunk_x: int, chunk_y: int, state: bool) -> bytes:
        return struct.pack("<BiiB", 7, chunk_x, chunk_y, 1 if state else 0)


@pytest.fixture
def frames() -> FrameBuilder:
    return FrameBuilder()


# =============================================================================
# Clients
# =============================================================================

@pytest.fixture
def config() -> ClientConfig:
    """Defaults, with reconnect off so closed sockets end the session."""
    return ClientConfig(session={"reconnect": False, "reconnect_time": 0.0})


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def new_transport():
    """Callable creating extra transports for multi-socket tests."""
    return FakeTransport


@pytest_asyncio.fixture
async def make_client(frozen_time):
    """
    Factory for clients over a fixed sequence of transports.

    Each connect attempt takes the next item; exceptions in the sequence are
    raised as failed attempts. Extra keyword arguments go to Client. All
    clients are closed on teardown.
    """
    created: List[Client] = []

    async def factory(config: ClientConfig, *transports, connect: bool = True, **client_kwargs) -> Client:
        queue = list(transports)

        async def open_transport():
            if not queue:
                raise OSError("no transport left")
            item = queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item

        c = Client(config, transport_factory=open_transport, clock=frozen_time.now, **client_kwargs)
        created.append(c)
        if connect:
            assert await c.connect()
        return c

    yield factory

    for c in created:
        await c.close()


@pytest_asyncio.fixture
async def client(make_client, config, transport):
    """A client connected to a fake transport."""
    return await make_client(config, transport)


@pytest_asyncio.fixture
async def joined_client(client, transport, frames):
    """A connected client that cleared the captcha, joined and got rank USER."""
    await transport.deliver(frames.captcha(3), frames.set_id(7), frames.set_rank(1))
    transport.sent.clear()
    return client
