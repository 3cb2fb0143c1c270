"""
Chunk payload decompression.

The server compresses chunk pixel data with a run-length scheme driven by an
explicit table of repeat offsets:

    [0, 2)        original length L (uint16 LE)
    [2, 4)        number of repeat entries R (uint16 LE)
    [4, 4 + 2R)   R offsets (uint16 LE), relative to the data segment
    [4 + 2R, ...) data segment: literal bytes interleaved with repeat
                  headers (uint16 LE count, then one RGB triplet)

Only decompression is needed; the format is produced by the server.
"""

import struct

from .exceptions import RLEDecodeError

_UINT16 = struct.Struct("<H")
_REPEAT_HEADER = struct.Struct("<HBBB")


def decompress(data: bytes) -> bytearray:
    """
    Expand a compressed chunk payload.

    Args:
        data: Compressed payload, starting with the length header

    Returns:
        The decompressed bytes, exactly as long as the declared length

    Raises:
        RLEDecodeError: If the payload is truncated, its repeat table is
            inconsistent, or the output does not match the declared length
    """
    data = memoryview(data)
    size = len(data)
    if size < 4:
        raise RLEDecodeError(f"payload too short for header ({size} bytes)")

    original_length = _UINT16.unpack_from(data, 0)[0]
    repeat_count = _UINT16.unpack_from(data, 2)[0]
    data_start = 4 + repeat_count * 2
    if data_start > size:
        raise RLEDecodeError(
            f"repeat table of {repeat_count} entries runs past end of payload ({size} bytes)"
        )

    out = bytearray()
    cursor = data_start

    for i in range(repeat_count):
        target = _UINT16.unpack_from(data, 4 + i * 2)[0] + data_start
        if target < cursor:
            raise RLEDecodeError(f"repeat entry {i} points backwards (offset {target} < {cursor})")
        if target + _REPEAT_HEADER.size > size:
            raise RLEDecodeError(f"repeat entry {i} at offset {target} is truncated")

        out += data[cursor:target]
        count, r, g, b = _REPEAT_HEADER.unpack_from(data, target)
        cursor = target + _REPEAT_HEADER.size

        # A run may never exceed the declared length
        if len(out) + count * 3 > original_length:
            raise RLEDecodeError(
                f"repeat entry {i} overflows declared length {original_length}"
            )
        out += bytes((r, g, b)) * count

    out += data[cursor:]

    if len(out) != original_length:
        raise RLEDecodeError(
            f"decompressed {len(out)} bytes, header declared {original_length}"
        )
    return out
