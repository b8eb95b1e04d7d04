"""Shared fixtures for pylon_mcp tests."""

import orjson
import pytest
import pytest_asyncio

from pylon_mcp.protocol import MCPProtocolHandler
from pylon_mcp.transport.base import Transport
from pylon_mcp.types import PromptHandler, ResourceHandler, ServerInfo, ToolHandler


class RecordingTransport(Transport):
    """Transport that keeps every outbound message in memory."""

    def __init__(self, protocol_handler):
        super().__init__(protocol_handler)
        self.sent = []

    async def start(self):
        self.running = True
        self.protocol.attach_transport(self)

    async def stop(self):
        self.running = False
        self.protocol.detach_transport(self)

    async def send_message(self, message, subscribers=None):
        self.sent.append((message, None if subscribers is None else set(subscribers)))


def add(a: int, b: int) -> int:
    """Add two integers."""
    return a + b


def greet(name: str, excited: bool = False) -> list:
    """Greet someone."""
    suffix = "!" if excited else "."
    return [{"role": "user", "content": {"type": "text", "text": f"Hello {name}{suffix}"}}]


def make_protocol():
    """Protocol handler with one tool, two resources and one prompt."""
    protocol = MCPProtocolHandler(ServerInfo(name="test-server", version="1.2.3"))
    protocol.register_tool(ToolHandler.from_function(add))
    protocol.register_resource(
        ResourceHandler.from_content("config://settings", "debug=true", name="Settings", mime_type="text/plain")
    )
    protocol.register_resource(
        ResourceHandler.from_content("file://logo.png", b"\x89PNG\r\n", name="Logo", mime_type="image/png")
    )
    protocol.register_prompt(PromptHandler.from_function(greet))
    return protocol


def request(method, msg_id=1, **params):
    message = {"jsonrpc": "2.0", "id": msg_id, "method": method}
    if params:
        message["params"] = params
    return message


def notification(method, **params):
    message = {"jsonrpc": "2.0", "method": method}
    if params:
        message["params"] = params
    return message


async def initialize(protocol, subscriber_id="stdio"):
    """Run the full handshake: initialize, then notifications/initialized."""
    response = await protocol.handle_request(request("initialize", protocolVersion="2024-11-05"), subscriber_id)
    await protocol.handle_request(notification("notifications/initialized"), subscriber_id)
    return response


async def post_chunked(app, path, headers=(), chunk_size=65536, chunks=200):
    """POST an oversized chunked body straight to an ASGI app.

    Returns ``(status, json_body, chunks_pulled)``.
    """
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(name.lower().encode(), value.encode()) for name, value in headers],
        "server": ("testserver", 80),
        "client": ("testclient", 50000),
    }
    pulled = 0
    sent = []

    async def receive():
        nonlocal pulled
        if pulled >= chunks:
            return {"type": "http.disconnect"}
        pulled += 1
        return {"type": "http.request", "body": b"x" * chunk_size, "more_body": pulled < chunks}

    async def send(message):
        sent.append(message)

    await app(scope, receive, send)
    status = next(message["status"] for message in sent if message["type"] == "http.response.start")
    body = b"".join(message.get("body", b"") for message in sent if message["type"] == "http.response.body")
    return status, orjson.loads(body), pulled


@pytest.fixture
def protocol():
    return make_protocol()


@pytest_asyncio.fixture
async def transport(protocol):
    recording = RecordingTransport(protocol)
    await recording.start()
    yield recording
    await recording.stop()
