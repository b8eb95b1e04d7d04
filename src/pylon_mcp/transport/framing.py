#!/usr/bin/env python3
# src/pylon_mcp/transport/framing.py
"""
Newline framing for byte streams.

Turns arbitrarily chunked input into complete lines. JSON text never
contains a raw line-feed byte, so splitting on ``\\n`` at the byte level is
always safe. Lines longer than the ceiling are dropped and reported in
place, without ending the stream.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from ..constants import MAX_MESSAGE_BYTES, STDIO_READ_CHUNK_BYTES
from ..errors import MessageTooLargeError

logger = logging.getLogger(__name__)

NEWLINE = b"\n"

Frame = bytes | MessageTooLargeError


class MessageFramer:
    """Incremental newline splitter with a per-line size ceiling.

    ``feed`` returns, in order, each complete non-blank line (whitespace
    stripped) and a ``MessageTooLargeError`` for each line that exceeded
    ``max_bytes``. The output for a stream is the same however it is split
    into chunks. A line of exactly ``max_bytes`` is delivered.
    """

    def __init__(self, max_bytes: int = MAX_MESSAGE_BYTES) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self.max_bytes = max_bytes
        self._buffer = bytearray()
        # Set while discarding the remainder of an oversized line
        self._skipping = False

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete line."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[Frame]:
        frames: list[Frame] = []
        start = 0
        end = len(chunk)

        while start < end:
            newline = chunk.find(NEWLINE, start)
            segment_end = end if newline == -1 else newline
            segment = chunk[start:segment_end]

            if not self._skipping:
                self._buffer += segment
                if len(self._buffer) > self.max_bytes:
                    # Drop what we have, keep dropping until the next newline
                    self._skipping = True
                    self._buffer.clear()
                    frames.append(MessageTooLargeError(self.max_bytes))
                    logger.warning(f"Discarding message over {self.max_bytes} bytes")

            if newline == -1:
                break

            if self._skipping:
                self._skipping = False
            else:
                line = bytes(self._buffer).strip()
                self._buffer.clear()
                if line:
                    frames.append(line)
            start = newline + 1

        return frames

    def finish(self) -> None:
        """Signal end of input; an unterminated trailing line is discarded."""
        if self._buffer.strip():
            logger.debug(f"Discarding {len(self._buffer)} bytes of unterminated input at end of stream")
        self._buffer.clear()
        self._skipping = False


async def read_frames(
    reader: asyncio.StreamReader,
    framer: MessageFramer | None = None,
    chunk_size: int = STDIO_READ_CHUNK_BYTES,
) -> AsyncIterator[Frame]:
    """Yield frames from ``reader`` until it reaches end of stream.

    Each read suspends until data arrives; an empty read means the source
    closed and ends the iteration.
    """
    framer = framer or MessageFramer()
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            framer.finish()
            return
        for frame in framer.feed(chunk):
            yield frame
