#!/usr/bin/env python3
# src/pylon_mcp/transport/http.py
"""
HTTP Transport - MCP over HTTP with server-push (SSE) streams.

Pure ASGI middleware in front of a host application:

- ``POST <prefix>/messages``  one JSON-RPC message in, its response out
  (``202`` with no body for notifications)
- ``GET <prefix>/sse``        long-lived push stream for notifications
- any other ``<prefix>/...``  404 JSON-RPC "Endpoint not found"
- everything else             handed to the wrapped application unchanged

Each push stream is a ``Connection`` owning a queue that the protocol
handler writes to through ``send_message``. A connection deregisters, and
its subscriptions are dropped, on every exit path: client disconnect,
failed push, or transport shutdown.
"""

import asyncio
import logging
import threading
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import orjson
from starlette.requests import ClientDisconnect, Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..constants import (
    BROADCAST_SUBSCRIBER,
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_SSE,
    DEFAULT_KEEPALIVE_INTERVAL,
    DEFAULT_MCP_PATH,
    ERROR_ENDPOINT_NOT_FOUND,
    HEADER_CONTENT_LENGTH,
    HEADERS_CORS_NOCACHE,
    HEADERS_SSE,
    JSONRPC_KEY,
    JSONRPC_VERSION,
    KEY_ERROR,
    KEY_ID,
    MAX_MESSAGE_BYTES,
    MAX_QUEUED_FRAMES,
    PATH_MESSAGES,
    PATH_SSE,
    QUERY_SESSION_ID,
    SSE_EVENT_ENDPOINT,
    SSE_EVENT_MESSAGE,
    SSE_KEEPALIVE,
    HttpStatus,
    JsonRpcError,
)
from ..errors import ConnectionClosedError
from ..protocol import MCPProtocolHandler
from .base import Transport

logger = logging.getLogger(__name__)


# ============================================================================
# Response helpers
# ============================================================================


def json_response(data: dict[str, Any], status_code: int = HttpStatus.OK) -> Response:
    return Response(
        orjson.dumps(data), status_code=status_code, media_type=CONTENT_TYPE_JSON, headers=HEADERS_CORS_NOCACHE
    )


def jsonrpc_error_response(msg_id: Any, code: int, message: str, status_code: int) -> Response:
    body = {JSONRPC_KEY: JSONRPC_VERSION, KEY_ID: msg_id, KEY_ERROR: {"code": int(code), "message": message}}
    return json_response(body, status_code=status_code)


async def read_body(request: Request, max_bytes: int) -> bytes | None:
    """Read a request body, giving up once it passes ``max_bytes``.

    Returns None for a body over the limit, whether declared by
    ``Content-Length`` or found while streaming a body without one.
    """
    declared = request.headers.get(HEADER_CONTENT_LENGTH)
    if declared and declared.isdigit() and int(declared) > max_bytes:
        return None

    body = bytearray()
    async for chunk in request.stream():
        body += chunk
        if len(body) > max_bytes:
            return None
    return bytes(body)


def sse_frame(event: str, data: str) -> bytes:
    """Encode one self-delimited push frame."""
    lines = "".join(f"data: {line}\n" for line in data.split("\n"))
    return f"event: {event}\n{lines}\n".encode()


# ============================================================================
# Connection
# ============================================================================


class Connection:
    """One open push stream and its outbound queue.

    ``push`` may be called from any thread; frames are handed to the event
    loop that owns the stream. Frames are written in push order.
    """

    def __init__(self, connection_id: str | None = None, max_queued: int = MAX_QUEUED_FRAMES) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.max_queued = max_queued
        self.closed = False
        # Set when the client stopped draining; queued frames are dropped
        self._discarded = False
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()

    def push(self, frame: bytes) -> None:
        """Queue a frame for delivery.

        Raises:
            ConnectionClosedError: when the stream is gone or its client has
                stopped draining frames.
        """
        if self.closed:
            raise ConnectionClosedError(f"Connection {self.id} is closed")
        if self._queue.qsize() >= self.max_queued:
            self.close(discard_pending=True)
            raise ConnectionClosedError(f"Connection {self.id} is not draining")
        self._enqueue(frame)

    def close(self, discard_pending: bool = False) -> None:
        """Stop the stream after the frames already queued, or at once with ``discard_pending``."""
        if discard_pending:
            self._discarded = True
        if self.closed:
            return
        self.closed = True
        try:
            self._enqueue(None)
        except ConnectionClosedError:
            pass  # loop gone, no reader to wake

    def _enqueue(self, item: bytes | None) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError as e:
            self.closed = True
            raise ConnectionClosedError(f"Connection {self.id} event loop is closed") from e

    async def frames(self, keepalive_interval: float) -> AsyncIterator[bytes]:
        """Yield queued frames, or a keep-alive comment after ``keepalive_interval`` idle seconds."""
        while True:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=keepalive_interval)
            except TimeoutError:
                if self.closed:
                    return
                yield SSE_KEEPALIVE
                continue
            if item is None or self._discarded:
                return
            yield item


# ============================================================================
# HTTP Transport
# ============================================================================


class HttpTransport(Transport):
    """ASGI middleware serving MCP under ``path_prefix``."""

    def __init__(
        self,
        protocol_handler: MCPProtocolHandler,
        app: ASGIApp | None = None,
        path_prefix: str = DEFAULT_MCP_PATH,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        max_body_bytes: int = MAX_MESSAGE_BYTES,
    ) -> None:
        super().__init__(protocol_handler)
        self.app = app
        self.path_prefix = "/" + path_prefix.strip("/")
        self.keepalive_interval = keepalive_interval
        self.max_body_bytes = max_body_bytes
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()

    # ================================================================
    # Lifecycle
    # ================================================================

    async def start(self) -> None:
        self.running = True
        self.protocol.attach_transport(self)
        logger.info(f"HTTP transport serving MCP at {self.path_prefix}")

    async def stop(self) -> None:
        self.running = False
        with self._lock:
            connections = list(self._connections.values())
        for connection in connections:
            connection.close()
        self.protocol.detach_transport(self)
        logger.debug(f"HTTP transport stopped, closed {len(connections)} stream(s)")

    @property
    def connections(self) -> dict[str, Connection]:
        with self._lock:
            return dict(self._connections)

    # ================================================================
    # ASGI entry point
    # ================================================================

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(scope, receive, send)
            return

        if scope["type"] == "http":
            response = await self.accept(Request(scope, receive))
            if response is not None:
                await response(scope, receive, send)
                return

        if self.app is not None:
            await self.app(scope, receive, send)
        elif scope["type"] == "http":
            await PlainTextResponse("Not Found", status_code=HttpStatus.NOT_FOUND)(scope, receive, send)

    async def _lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Start and stop with the server, then let the host app see the same events."""

        async def receive_and_track() -> Message:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await self.start()
            elif message["type"] == "lifespan.shutdown":
                await self.stop()
            return message

        if self.app is not None:
            await self.app(scope, receive_and_track, send)
            return

        while True:
            message = await receive_and_track()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def accept(self, request: Request) -> Response | None:
        """Handle a request under the MCP prefix.

        Returns the response to send, or None when the path is not ours and
        belongs to the wrapped application.
        """
        path = request.url.path
        if path != self.path_prefix and not path.startswith(self.path_prefix + "/"):
            return None

        sub_path = path[len(self.path_prefix) :].rstrip("/")
        if sub_path == PATH_MESSAGES and request.method == "POST":
            return await self._handle_post(request)
        if sub_path == PATH_SSE and request.method == "GET":
            return self._open_stream(request)

        logger.debug(f"No MCP endpoint for {request.method} {path}")
        return jsonrpc_error_response(
            None, JsonRpcError.METHOD_NOT_FOUND, ERROR_ENDPOINT_NOT_FOUND, HttpStatus.NOT_FOUND
        )

    # ================================================================
    # Plain submissions
    # ================================================================

    async def _handle_post(self, request: Request) -> Response:
        try:
            body = await read_body(request, self.max_body_bytes)
        except ClientDisconnect:
            logger.debug("Client disconnected before sending its request body")
            return Response(status_code=HttpStatus.ACCEPTED)
        if body is None:
            return self._too_large()

        subscriber_id = self._subscriber_for(request)
        response = await self.protocol.handle_message(body, subscriber_id)
        if response is None:
            return Response(status_code=HttpStatus.ACCEPTED, headers=HEADERS_CORS_NOCACHE)
        return json_response(response)

    def _subscriber_for(self, request: Request) -> str:
        """Subscriptions made over POST belong to the stream named by ``session_id``."""
        session_id = request.query_params.get(QUERY_SESSION_ID)
        if session_id:
            with self._lock:
                if session_id in self._connections:
                    return session_id
            logger.debug(f"Unknown session {session_id}; treating request as anonymous")
        return BROADCAST_SUBSCRIBER

    def _too_large(self) -> Response:
        return jsonrpc_error_response(
            None, JsonRpcError.MESSAGE_TOO_LARGE, "Message too large", HttpStatus.PAYLOAD_TOO_LARGE
        )

    # ================================================================
    # Push streams
    # ================================================================

    def _open_stream(self, request: Request) -> StreamingResponse:
        connection = Connection()
        logger.info(f"Push stream {connection.id} opened from {request.client.host if request.client else 'unknown'}")
        return StreamingResponse(
            self._event_stream(connection), media_type=CONTENT_TYPE_SSE, headers=HEADERS_SSE
        )

    @asynccontextmanager
    async def _registered(self, connection: Connection) -> AsyncIterator[Connection]:
        with self._lock:
            self._connections[connection.id] = connection
        try:
            yield connection
        finally:
            self._release(connection)

    def _release(self, connection: Connection) -> None:
        """Deregister a connection and forget its subscriptions; safe to call twice."""
        connection.close()
        with self._lock:
            removed = self._connections.pop(connection.id, None)
        if removed is not None:
            self.protocol.drop_subscriber(connection.id)
            logger.info(f"Push stream {connection.id} closed")

    async def _event_stream(self, connection: Connection) -> AsyncIterator[bytes]:
        async with self._registered(connection):
            endpoint = f"{self.path_prefix}{PATH_MESSAGES}?{QUERY_SESSION_ID}={connection.id}"
            yield sse_frame(SSE_EVENT_ENDPOINT, endpoint)
            async for frame in connection.frames(self.keepalive_interval):
                yield frame

    async def send_message(self, message: dict[str, Any], subscribers: set[str] | None = None) -> None:
        """Push a message to the targeted streams.

        ``None`` or the broadcast subscriber reaches every open stream.
        A stream that cannot take the frame is torn down here; the failure
        never reaches the caller.
        """
        frame = sse_frame(SSE_EVENT_MESSAGE, orjson.dumps(message).decode())
        with self._lock:
            if subscribers is None or BROADCAST_SUBSCRIBER in subscribers:
                targets = list(self._connections.values())
            else:
                targets = [self._connections[sid] for sid in subscribers if sid in self._connections]

        for connection in targets:
            try:
                connection.push(frame)
            except ConnectionClosedError as e:
                logger.warning(f"Dropping push stream: {e}")
                self._release(connection)
