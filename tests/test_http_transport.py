"""Tests for the HTTP transport: plain submissions, push streams and routing."""

import asyncio
import threading

import httpx
import orjson
import pytest
import pytest_asyncio
from conftest import initialize, make_protocol, post_chunked, request
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from pylon_mcp.errors import ConnectionClosedError
from pylon_mcp.transport.http import Connection, HttpTransport, sse_frame

PING = b'{"jsonrpc":"2.0","id":1,"method":"ping"}'


def host_app() -> Starlette:
    async def hello(request):
        return PlainTextResponse("hello from host")

    return Starlette(routes=[Route("/hello", hello)])


@pytest.fixture
def client():
    transport = HttpTransport(make_protocol(), app=host_app(), max_body_bytes=1024)
    with TestClient(transport) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def http_transport():
    transport = HttpTransport(make_protocol(), keepalive_interval=0.05)
    await transport.start()
    yield transport
    await transport.stop()


def async_client(transport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=transport), base_url="http://test")


class TestPlainSubmission:
    def test_post_ping(self, client):
        response = client.post("/mcp/messages", content=PING)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": {}}

    def test_notification_is_accepted_without_body(self, client):
        response = client.post("/mcp/messages", content=b'{"jsonrpc":"2.0","method":"notifications/initialized"}')
        assert response.status_code == 202
        assert response.content == b""

    def test_invalid_json_body(self, client):
        response = client.post("/mcp/messages", content=b"not json")
        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32600

    def test_oversized_body_is_rejected(self, client):
        response = client.post("/mcp/messages", content=b"x" * 2048)
        assert response.status_code == 413
        assert response.json()["error"]["code"] == -32001

    def test_trailing_slash_is_tolerated(self, client):
        response = client.post("/mcp/messages/", content=PING)
        assert response.json()["result"] == {}

    @pytest.mark.asyncio
    async def test_chunked_body_stops_reading_at_limit(self):
        transport = HttpTransport(make_protocol(), max_body_bytes=1024)
        status, body, pulled = await post_chunked(transport, "/mcp/messages")
        assert status == 413
        assert body["error"]["code"] == -32001
        assert pulled == 1

    @pytest.mark.asyncio
    async def test_declared_length_over_limit_is_rejected_unread(self):
        transport = HttpTransport(make_protocol(), max_body_bytes=1024)
        status, _, pulled = await post_chunked(transport, "/mcp/messages", headers=[("Content-Length", "13107200")])
        assert status == 413
        assert pulled == 0


class TestRouting:
    @pytest.mark.parametrize(
        ("method", "path"),
        [("GET", "/mcp/unknown"), ("GET", "/mcp"), ("GET", "/mcp/messages"), ("POST", "/mcp/sse")],
    )
    def test_unknown_endpoint(self, client, method, path):
        response = client.request(method, path)
        assert response.status_code == 404
        assert response.json() == {"jsonrpc": "2.0", "error": {"code": -32601, "message": "Endpoint not found"}, "id": None}

    def test_other_paths_reach_host_app(self, client):
        response = client.get("/hello")
        assert response.status_code == 200
        assert response.text == "hello from host"

    def test_prefix_match_is_whole_segment(self, client):
        # /mcpx is not under /mcp
        assert client.get("/mcpx/messages").status_code == 404
        assert client.get("/mcpx/messages").text == "Not Found"

    def test_without_host_app_unknown_paths_are_404(self):
        with TestClient(HttpTransport(make_protocol())) as bare:
            response = bare.get("/elsewhere")
        assert response.status_code == 404

    def test_custom_prefix(self):
        with TestClient(HttpTransport(make_protocol(), path_prefix="rpc/")) as custom:
            assert custom.post("/rpc/messages", content=PING).json()["id"] == 1
            assert custom.post("/mcp/messages", content=PING).status_code == 404

    def test_lifespan_attaches_transport(self):
        protocol = make_protocol()
        transport = HttpTransport(protocol, app=host_app())
        with TestClient(transport):
            assert protocol.transport is transport
        assert protocol.transport is None


class TestConnection:
    @pytest.mark.asyncio
    async def test_frames_are_delivered_in_push_order(self):
        connection = Connection()
        for index in range(3):
            connection.push(f"{index}".encode())
        connection.close()
        received = [frame async for frame in connection.frames(keepalive_interval=1)]
        assert received == [b"0", b"1", b"2"]

    @pytest.mark.asyncio
    async def test_keepalive_when_idle(self):
        connection = Connection()
        stream = connection.frames(keepalive_interval=0.01)
        assert await anext(stream) == b": keep-alive\n\n"
        connection.close()
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_push_after_close_fails(self):
        connection = Connection()
        connection.close()
        with pytest.raises(ConnectionClosedError):
            connection.push(b"late")

    @pytest.mark.asyncio
    async def test_backlogged_connection_is_dead(self):
        connection = Connection(max_queued=2)
        connection.push(b"a")
        connection.push(b"b")
        with pytest.raises(ConnectionClosedError):
            connection.push(b"c")
        assert connection.closed

    @pytest.mark.asyncio
    async def test_backlogged_connection_drops_queued_frames(self):
        connection = Connection(max_queued=2)
        connection.push(b"a")
        connection.push(b"b")
        with pytest.raises(ConnectionClosedError):
            connection.push(b"c")
        received = [frame async for frame in connection.frames(keepalive_interval=1)]
        assert received == []

    @pytest.mark.asyncio
    async def test_push_from_another_thread(self):
        connection = Connection()
        worker = threading.Thread(target=connection.push, args=(b"threaded",))
        worker.start()
        worker.join()
        stream = connection.frames(keepalive_interval=1)
        assert await asyncio.wait_for(anext(stream), timeout=1) == b"threaded"
        await stream.aclose()


class TestPushStream:
    @pytest.mark.asyncio
    async def test_stream_announces_endpoint_and_registers(self, http_transport):
        connection = Connection()
        stream = http_transport._event_stream(connection)

        first = await anext(stream)

        assert first == f"event: endpoint\ndata: /mcp/messages?session_id={connection.id}\n\n".encode()
        assert connection.id in http_transport.connections
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_closing_stream_releases_connection_and_subscriptions(self, http_transport):
        protocol = http_transport.protocol
        await initialize(protocol)
        connection = Connection()
        stream = http_transport._event_stream(connection)
        await anext(stream)
        protocol.state.subscribe("config://settings", connection.id)

        await stream.aclose()

        assert connection.id not in http_transport.connections
        assert protocol.state.subscribers("config://settings") == set()

    @pytest.mark.asyncio
    async def test_keepalive_on_idle_stream(self, http_transport):
        stream = http_transport._event_stream(Connection())
        await anext(stream)
        assert await asyncio.wait_for(anext(stream), timeout=1) == b": keep-alive\n\n"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_session_subscription_gets_targeted_update(self, http_transport):
        protocol = http_transport.protocol
        subscribed, other = Connection(), Connection()
        subscribed_stream = http_transport._event_stream(subscribed)
        other_stream = http_transport._event_stream(other)
        await anext(subscribed_stream)
        await anext(other_stream)

        async with async_client(http_transport) as http:
            await http.post("/mcp/messages", content=b'{"jsonrpc":"2.0","method":"notifications/initialized"}')
            response = await http.post(
                f"/mcp/messages?session_id={subscribed.id}",
                content=orjson.dumps(request("resources/subscribe", uri="config://settings")),
            )
        assert response.json()["result"] == {"subscribed": True}
        assert protocol.state.subscribers("config://settings") == {subscribed.id}

        await protocol.notify_resource_updated("config://settings")

        frame = await asyncio.wait_for(anext(subscribed_stream), timeout=1)
        assert frame.startswith(b"event: message\ndata: ")
        payload = orjson.loads(frame[len(b"event: message\ndata: ") :].strip())
        assert payload["method"] == "notifications/resources/updated"
        # The other stream only sees keep-alives
        assert await asyncio.wait_for(anext(other_stream), timeout=1) == b": keep-alive\n\n"

        await subscribed_stream.aclose()
        await other_stream.aclose()

    @pytest.mark.asyncio
    async def test_anonymous_subscription_broadcasts(self, http_transport):
        protocol = http_transport.protocol
        stream = http_transport._event_stream(Connection())
        await anext(stream)

        async with async_client(http_transport) as http:
            await http.post("/mcp/messages", content=b'{"jsonrpc":"2.0","method":"notifications/initialized"}')
            await http.post(
                "/mcp/messages?session_id=not-a-live-stream",
                content=orjson.dumps(request("resources/subscribe", uri="config://settings")),
            )
        assert protocol.state.subscribers("config://settings") == {"*"}

        await protocol.notify_resource_updated("config://settings")
        frame = await asyncio.wait_for(anext(stream), timeout=1)
        assert b"notifications/resources/updated" in frame
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_dead_connection_is_dropped_on_send(self, http_transport):
        protocol = http_transport.protocol
        connection = Connection(max_queued=1)
        stream = http_transport._event_stream(connection)
        await anext(stream)
        protocol.state.subscribe("config://settings", connection.id)

        await http_transport.send_message({"jsonrpc": "2.0", "method": "a"})
        await http_transport.send_message({"jsonrpc": "2.0", "method": "b"})

        assert connection.closed
        assert connection.id not in http_transport.connections
        assert protocol.state.subscribers("config://settings") == set()
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_stop_closes_open_streams(self):
        transport = HttpTransport(make_protocol())
        await transport.start()
        connection = Connection()
        stream = transport._event_stream(connection)
        await anext(stream)

        await transport.stop()

        remaining = [frame async for frame in stream]
        assert remaining == []
        assert transport.connections == {}


class TestSseFrame:
    def test_single_line(self):
        assert sse_frame("message", '{"a":1}') == b'event: message\ndata: {"a":1}\n\n'

    def test_multi_line_data(self):
        assert sse_frame("message", "a\nb") == b"event: message\ndata: a\ndata: b\n\n"
