"""
Unit tests for the sparse chunk store.
"""

import random

import pytest

from owop_client.chunk_manager import ChunkStore

BLANK = bytes(3 * 16 * 16)


@pytest.fixture
def store():
    return ChunkStore(16)


class TestChunkAddressing:
    """Pixel to chunk coordinate conversion."""

    @pytest.mark.parametrize(
        "pixel,chunk",
        [((0, 0), (0, 0)), ((15, 15), (0, 0)), ((16, 0), (1, 0)), ((-1, -1), (-1, -1)),
         ((-16, -17), (-1, -2)), ((1000, -1000), (62, -63))],
    )
    def test_chunk_coords_floor(self, store, pixel, chunk):
        assert store.chunk_coords(*pixel) == chunk

    def test_non_power_of_two_rejected(self):
        with pytest.raises(ValueError):
            ChunkStore(12)

    def test_set_then_get_pixel_round_trips_everywhere(self, store):
        """Every pixel in [-1000, 1000]^2 is addressable once its chunk is loaded."""
        rng = random.Random(1234)
        for cx in range(-63, 63):
            for cy in range(-63, 63):
                store.set_chunk(cx, cy, BLANK)

        samples = [(rng.randint(-1000, 1000), rng.randint(-1000, 1000)) for _ in range(2000)]
        samples += [(-1000, -1000), (1000, 1000), (-1, 0), (0, -1), (-16, 15)]
        for x, y in samples:
            color = (x & 0xFF, y & 0xFF, (x ^ y) & 0xFF)
            assert store.set_pixel(x, y, color) is True
            assert store.get_pixel(x, y) == color

    def test_pixel_lands_at_row_major_offset(self, store):
        store.set_chunk(-1, 0, BLANK)

        store.set_pixel(-14, 3, (1, 2, 3))

        buffer = store.get_chunk_raw(-1, 0)
        i = (3 * 16 + 2) * 3
        assert buffer[i:i + 3] == b"\x01\x02\x03"

    def test_neighbouring_chunks_are_independent(self, store):
        store.set_chunk(0, 0, BLANK)
        store.set_chunk(-1, 0, BLANK)

        store.set_pixel(0, 0, (9, 9, 9))

        assert store.get_pixel(-1, 0) == (0, 0, 0)
        assert store.get_pixel(0, 0) == (9, 9, 9)


class TestMissingChunks:
    """Operations on chunks that were never loaded."""

    def test_set_pixel_returns_false(self, store):
        assert store.set_pixel(5, 5, (1, 1, 1)) is False

    def test_get_pixel_returns_none(self, store):
        assert store.get_pixel(-5, 5) is None

    def test_get_chunk_returns_none(self, store):
        assert store.get_chunk(100, 100) is None
        assert store.get_chunk_raw(100, 100) is None


class TestChunkLifecycle:

    def test_set_chunk_copies_buffer(self, store):
        data = bytearray(BLANK)
        store.set_chunk(2, 3, data)
        data[0] = 255

        assert store.get_pixel(32, 48) == (0, 0, 0)

    def test_wrong_size_rejected(self, store):
        with pytest.raises(ValueError):
            store.set_chunk(0, 0, b"\x00" * 10)

    def test_get_chunk_by_pixel_and_raw(self, store):
        buffer = store.set_chunk(-2, 1, BLANK)

        assert store.get_chunk(-17, 16) is buffer
        assert store.get_chunk_raw(-2, 1) is buffer
        assert (-2, 1) in store
        assert len(store) == 1

    def test_reload_replaces(self, store):
        store.set_chunk(0, 0, BLANK)
        store.set_pixel(1, 1, (5, 5, 5))

        store.set_chunk(0, 0, bytes([7]) * len(BLANK))

        assert store.get_pixel(1, 1) == (7, 7, 7)

    def test_remove_chunk(self, store):
        store.set_chunk(4, 4, BLANK)
        store.protect(4, 4)

        removed = store.remove_chunk(4, 4)

        assert removed is not None
        assert store.get_chunk_raw(4, 4) is None
        assert store.is_protected(4, 4) is False
        assert store.remove_chunk(4, 4) is None

    def test_short_color_rejected_without_resizing(self, store):
        store.set_chunk(0, 0, BLANK)

        with pytest.raises(ValueError):
            store.set_pixel(0, 0, (1, 2))

        assert len(store.get_chunk_raw(0, 0)) == len(BLANK)
        assert store.get_pixel(1, 0) == (0, 0, 0)

    def test_extra_color_components_ignored(self, store):
        store.set_chunk(0, 0, BLANK)

        assert store.set_pixel(0, 0, (1, 2, 3, 4)) is True

        assert len(store.get_chunk_raw(0, 0)) == len(BLANK)
        assert store.get_pixel(1, 0) == (0, 0, 0)


class TestProtection:

    def test_unprotected_by_default(self, store):
        assert store.is_protected(0, 0) is False

    def test_protect_and_unprotect(self, store):
        store.protect(-3, 7)
        assert store.is_protected(-3, 7) is True
        assert store.is_protected(3, 7) is False

        store.unprotect(-3, 7)
        assert store.is_protected(-3, 7) is False

    def test_unprotect_unknown_chunk_is_noop(self, store):
        store.unprotect(1, 1)

        assert store.is_protected(1, 1) is False
