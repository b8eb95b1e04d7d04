#!/usr/bin/env python3
# src/pylon_mcp/transport/stdio.py
"""
STDIO Transport - MCP over standard input/output.

One JSON-RPC message per line in each direction. The loop is strictly
sequential: read, decode, dispatch, write. Diagnostics go to the logger
(stderr), never to stdout.
"""

import asyncio
import logging
import sys
from typing import Any, TextIO

import orjson

from ..constants import (
    DEFAULT_ENCODING,
    JSONRPC_KEY,
    JSONRPC_VERSION,
    KEY_ERROR,
    KEY_ID,
    MAX_MESSAGE_BYTES,
    STDIO_READ_CHUNK_BYTES,
    STDIO_SUBSCRIBER,
    JsonRpcError,
)
from ..errors import MessageTooLargeError
from ..protocol import MCPProtocolHandler
from .base import Transport
from .framing import MessageFramer, read_frames

logger = logging.getLogger(__name__)


class StdioTransport(Transport):
    """
    Handle MCP protocol communication over stdio (stdin/stdout).

    ``reader`` and ``writer`` default to the process streams; tests pass an
    ``asyncio.StreamReader`` and an in-memory text buffer instead.
    """

    def __init__(
        self,
        protocol_handler: MCPProtocolHandler,
        reader: asyncio.StreamReader | None = None,
        writer: TextIO | None = None,
        max_message_bytes: int = MAX_MESSAGE_BYTES,
    ) -> None:
        super().__init__(protocol_handler)
        self.reader = reader
        self.writer = writer
        self.framer = MessageFramer(max_message_bytes)

    async def start(self) -> None:
        """Attach to the protocol handler and serve until stdin closes or ``stop`` is called."""
        self.running = True
        self.protocol.attach_transport(self)

        reader = self.reader
        if reader is None:
            loop = asyncio.get_running_loop()
            reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(reader)
            await loop.connect_read_pipe(lambda: protocol, sys.stdin)
            self.reader = reader
        if self.writer is None:
            self.writer = sys.stdout

        try:
            await self._listen(reader)
        finally:
            self.running = False
            self.protocol.detach_transport(self)

    async def _listen(self, reader: asyncio.StreamReader) -> None:
        """Read frames from stdin and handle them one at a time."""
        async for frame in read_frames(reader, self.framer, STDIO_READ_CHUNK_BYTES):
            if not self.running:
                break
            if isinstance(frame, MessageTooLargeError):
                await self._send_error(None, JsonRpcError.MESSAGE_TOO_LARGE, "Message too large")
                continue
            await self._handle_line(frame)
        logger.debug("stdin closed, stdio transport stopping")

    async def _handle_line(self, line: bytes) -> None:
        """
        Handle a single framed line.

        Args:
            line: One complete line, without its terminator
        """
        try:
            message = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            logger.debug(f"Invalid JSON in stdio message: {e}")
            await self._send_error(None, JsonRpcError.PARSE_ERROR, "Parse error: Invalid JSON")
            return

        response = await self.protocol.handle_request(message, STDIO_SUBSCRIBER)
        if response is not None:
            await self.send_message(response)

    async def send_message(self, message: dict[str, Any], subscribers: set[str] | None = None) -> None:
        """
        Write one message as a line on stdout.

        stdio has a single client, so ``subscribers`` does not narrow delivery.

        Args:
            message: Message dictionary to send
            subscribers: Ignored
        """
        if self.writer is None:
            logger.warning("stdio transport not started; dropping outbound message")
            return
        try:
            self.writer.write(orjson.dumps(message).decode(DEFAULT_ENCODING) + "\n")
            self.writer.flush()
        except (OSError, ValueError) as e:
            logger.error(f"Error writing stdio message: {e}")

    async def _send_error(self, request_id: Any, code: int, message: str) -> None:
        """
        Send an error response.

        Args:
            request_id: The request ID (if available)
            code: JSON-RPC error code
            message: Error message
        """
        error_response = {
            JSONRPC_KEY: JSONRPC_VERSION,
            KEY_ID: request_id,
            KEY_ERROR: {"code": int(code), "message": message},
        }
        await self.send_message(error_response)

    async def stop(self) -> None:
        """Stop the stdio transport.

        Checked between messages; a read already waiting on stdin is not
        interrupted.
        """
        self.running = False


def run_stdio_server(protocol_handler: MCPProtocolHandler, max_message_bytes: int = MAX_MESSAGE_BYTES) -> None:
    """
    Run the MCP server in stdio mode until stdin closes.

    Args:
        protocol_handler: The MCP protocol handler instance
        max_message_bytes: Per-line size ceiling
    """

    async def _run() -> None:
        transport = StdioTransport(protocol_handler, max_message_bytes=max_message_bytes)
        try:
            await transport.start()
        finally:
            await transport.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.debug("stdio server interrupted")
