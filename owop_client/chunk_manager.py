"""
Chunk management for world pixel data.
"""

from typing import Dict, Optional, Set, Tuple

from .constants import DEFAULT_CHUNK_SIZE

ChunkKey = Tuple[int, int]
Color = Tuple[int, int, int]


class ChunkStore:
    """
    Sparse cache of loaded chunks.

    Each chunk is a flat row-major RGB buffer of chunk_size * chunk_size
    pixels, keyed by its chunk coordinate. Negative coordinates are ordinary
    keys.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0 or chunk_size & (chunk_size - 1):
            raise ValueError(f"chunk size must be a power of two, got {chunk_size}")
        self.chunk_size = chunk_size
        self._shift = chunk_size.bit_length() - 1
        self._mask = chunk_size - 1
        self.chunks: Dict[ChunkKey, bytearray] = {}  # (chunk_x, chunk_y) -> rgb buffer
        self._protected: Set[ChunkKey] = set()

    @property
    def buffer_size(self) -> int:
        """Byte length of one chunk buffer."""
        return 3 * self.chunk_size * self.chunk_size

    def chunk_coords(self, x: int, y: int) -> ChunkKey:
        """Convert pixel coordinates to the owning chunk coordinates."""
        return x >> self._shift, y >> self._shift

    def _pixel_index(self, x: int, y: int) -> int:
        return ((y & self._mask) * self.chunk_size + (x & self._mask)) * 3

    def set_chunk(self, chunk_x: int, chunk_y: int, data: bytes) -> bytearray:
        """Install (or replace) the buffer of a chunk."""
        if len(data) != self.buffer_size:
            raise ValueError(
                f"chunk ({chunk_x}, {chunk_y}) buffer is {len(data)} bytes, expected {self.buffer_size}"
            )
        buffer = bytearray(data)
        self.chunks[(chunk_x, chunk_y)] = buffer
        return buffer

    def get_chunk(self, x: int, y: int) -> Optional[bytearray]:
        """Get the chunk containing pixel (x, y)."""
        return self.chunks.get(self.chunk_coords(x, y))

    def get_chunk_raw(self, chunk_x: int, chunk_y: int) -> Optional[bytearray]:
        """Get a chunk by chunk coordinates."""
        return self.chunks.get((chunk_x, chunk_y))

    def has_chunk(self, chunk_x: int, chunk_y: int) -> bool:
        return (chunk_x, chunk_y) in self.chunks

    def remove_chunk(self, chunk_x: int, chunk_y: int) -> Optional[bytearray]:
        """Evict a chunk, returning its buffer if it was loaded."""
        self._protected.discard((chunk_x, chunk_y))
        return self.chunks.pop((chunk_x, chunk_y), None)

    def set_pixel(self, x: int, y: int, color: Color) -> bool:
        """
        Write one pixel.

        Returns:
            False if the owning chunk is not loaded, True otherwise

        Raises:
            ValueError: If color has fewer than three components
        """
        if len(color) < 3:
            raise ValueError(f"color needs three components, got {color!r}")
        chunk = self.get_chunk(x, y)
        if chunk is None:
            return False
        i = self._pixel_index(x, y)
        chunk[i:i + 3] = bytes(color[:3])
        return True

    def get_pixel(self, x: int, y: int) -> Optional[Color]:
        """Read one pixel, or None if the owning chunk is not loaded."""
        chunk = self.get_chunk(x, y)
        if chunk is None:
            return None
        i = self._pixel_index(x, y)
        return chunk[i], chunk[i + 1], chunk[i + 2]

    def protect(self, chunk_x: int, chunk_y: int) -> None:
        self._protected.add((chunk_x, chunk_y))

    def unprotect(self, chunk_x: int, chunk_y: int) -> None:
        self._protected.discard((chunk_x, chunk_y))

    def is_protected(self, chunk_x: int, chunk_y: int) -> bool:
        return (chunk_x, chunk_y) in self._protected

    def __len__(self) -> int:
        return len(self.chunks)

    def __contains__(self, key: ChunkKey) -> bool:
        return key in self.chunks
