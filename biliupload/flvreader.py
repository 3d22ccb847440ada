"""Buffered reader that hands out fixed-size frames from a byte stream."""

from __future__ import annotations

from typing import BinaryIO

_READ_SIZE = 8 * 1024


class FrameReader:
    """Reads exact-size frames; at end of stream returns whatever is left."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._buffer = bytearray()

    def read_frame(self, size: int) -> bytes:
        """Return the next ``size`` bytes, or the remaining bytes if the stream ends first."""
        while size > len(self._buffer):
            chunk = self._stream.read(_READ_SIZE)
            if not chunk:
                rest = bytes(self._buffer)
                self._buffer.clear()
                return rest
            self._buffer += chunk
        frame = bytes(self._buffer[:size])
        del self._buffer[:size]
        return frame