"""Tests for the stdio transport."""

import asyncio
import io

import orjson
import pytest
from conftest import make_protocol

from pylon_mcp.transport.stdio import StdioTransport


async def run_stdio(payload: bytes, max_message_bytes: int = 1024 * 1024, protocol=None):
    """Feed ``payload`` to a transport, run it to EOF and return the decoded output lines."""
    protocol = protocol or make_protocol()
    reader = asyncio.StreamReader()
    reader.feed_data(payload)
    reader.feed_eof()
    writer = io.StringIO()

    transport = StdioTransport(protocol, reader=reader, writer=writer, max_message_bytes=max_message_bytes)
    await asyncio.wait_for(transport.start(), timeout=5)

    return [orjson.loads(line) for line in writer.getvalue().splitlines()]


class TestStdioTransport:
    @pytest.mark.asyncio
    async def test_ping(self):
        output = await run_stdio(b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n')
        assert output == [{"jsonrpc": "2.0", "id": 1, "result": {}}]

    @pytest.mark.asyncio
    async def test_responses_follow_input_order(self):
        payload = b"".join(
            orjson.dumps({"jsonrpc": "2.0", "id": i, "method": "ping"}) + b"\n" for i in range(5)
        )
        output = await run_stdio(payload)
        assert [message["id"] for message in output] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_invalid_json_is_parse_error(self):
        output = await run_stdio(b"{oops\n")
        assert output == [{"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error: Invalid JSON"}}]

    @pytest.mark.asyncio
    async def test_oversized_line_reported_then_loop_continues(self):
        payload = b'{"pad":"' + b"x" * 200 + b'"}\n' + b'{"jsonrpc":"2.0","id":2,"method":"ping"}\n'
        output = await run_stdio(payload, max_message_bytes=100)
        assert output[0]["id"] is None
        assert output[0]["error"]["code"] == -32001
        assert output[1] == {"jsonrpc": "2.0", "id": 2, "result": {}}

    @pytest.mark.asyncio
    async def test_notifications_produce_no_output(self):
        protocol = make_protocol()
        output = await run_stdio(b'{"jsonrpc":"2.0","method":"notifications/initialized"}\n', protocol=protocol)
        assert output == []
        assert protocol.state.initialized is True

    @pytest.mark.asyncio
    async def test_blank_lines_are_ignored(self):
        output = await run_stdio(b'\n\n  \n{"jsonrpc":"2.0","id":1,"method":"ping"}\n\n')
        assert len(output) == 1

    @pytest.mark.asyncio
    async def test_eof_detaches_transport(self):
        protocol = make_protocol()
        await run_stdio(b"", protocol=protocol)
        assert protocol.transport is None

    @pytest.mark.asyncio
    async def test_subscription_updates_reach_stdout(self):
        protocol = make_protocol()
        reader = asyncio.StreamReader()
        writer = io.StringIO()
        transport = StdioTransport(protocol, reader=reader, writer=writer)
        task = asyncio.create_task(transport.start())

        for message in (
            {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 2, "method": "resources/subscribe", "params": {"uri": "config://settings"}},
        ):
            reader.feed_data(orjson.dumps(message) + b"\n")
        while len(writer.getvalue().splitlines()) < 2:
            await asyncio.sleep(0.01)

        await protocol.notify_resource_updated("config://settings")
        reader.feed_eof()
        await asyncio.wait_for(task, timeout=5)

        lines = [orjson.loads(line) for line in writer.getvalue().splitlines()]
        assert lines[-1]["method"] == "notifications/resources/updated"
        assert lines[-1]["params"]["uri"] == "config://settings"

    @pytest.mark.asyncio
    async def test_send_before_start_is_dropped(self):
        transport = StdioTransport(make_protocol())
        await transport.send_message({"jsonrpc": "2.0", "method": "x"})
