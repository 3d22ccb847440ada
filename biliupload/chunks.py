"""Chunked reading, progress splitting and retrying helpers for uploads."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from os import PathLike
from typing import TypeVar

T = TypeVar("T")

PROGRESS_PIECE = 4096


def iter_file_chunks(path: str | PathLike[str], chunk_size: int) -> Iterator[bytes]:
    """Yield the file's contents in chunks of ``chunk_size`` bytes (the last may be shorter)."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    with open(path, "rb") as handle:
        while chunk := handle.read(chunk_size):
            yield chunk


def split_progress(
    data: bytes,
    callback: Callable[[int], object],
    piece: int = PROGRESS_PIECE,
) -> Iterator[bytes]:
    """Yield ``data`` in pieces of at most ``piece`` bytes, reporting each piece's size."""
    if piece <= 0:
        raise ValueError("piece must be positive")
    view = memoryview(data)
    for start in range(0, len(view), piece):
        part = bytes(view[start : start + piece])
        callback(len(part))
        yield part


def retry(func: Callable[[], T], attempts: int = 3, delay: float = 1.0) -> T:
    """Call ``func`` until it succeeds, at most ``attempts`` times; re-raise the last error."""
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except Exception:
            if attempt == attempts:
                raise
            if delay > 0:
                time.sleep(delay)
    raise AssertionError("unreachable")