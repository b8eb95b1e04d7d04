"""Tests for the command-line entry point."""

import pytest

from pylon_mcp.cli import build_parser, create_example_server, main, resolve_config


class TestParser:
    def test_mode_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_http_flags(self):
        args = build_parser().parse_args(
            ["http", "--port", "9000", "--auth-token", "t", "--auth-exempt", "/health", "--auth-exempt", "/"]
        )
        assert args.port == 9000
        assert args.auth_exempt_paths == ["/health", "/"]

    def test_stdio_has_no_http_flags(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["stdio", "--port", "9000"])


class TestResolveConfig:
    def test_mode_overrides_environment(self):
        args = build_parser().parse_args(["http"])
        assert resolve_config(args, {"MCP_TRANSPORT": "stdio"}).transport == "http"

    def test_auto_uses_environment(self):
        args = build_parser().parse_args(["auto"])
        assert resolve_config(args, {"MCP_TRANSPORT": "http"}).transport == "http"
        assert resolve_config(args, {}).transport == "stdio"

    def test_flags_override_environment(self):
        args = build_parser().parse_args(["http", "--host", "0.0.0.0", "--path", "/rpc"])
        config = resolve_config(args, {"MCP_HOST": "10.0.0.1", "MCP_AUTH_TOKEN": "env-token"})
        assert config.host == "0.0.0.0"
        assert config.path_prefix == "/rpc"
        assert config.auth_token == "env-token"


class TestExampleServer:
    @pytest.mark.asyncio
    async def test_registries(self):
        server = create_example_server()
        assert set(server.protocol.tools) == {"echo", "add"}
        assert set(server.protocol.resources) == {"server://info"}
        assert set(server.protocol.prompts) == {"summarize"}

        contents = await server.protocol.resources["server://info"].read_contents()
        assert '"name"' in contents["text"]

        rendered = await server.protocol.prompts["summarize"].validate_and_render({"text": "long story"})
        assert [entry["role"] for entry in rendered] == ["user", "assistant"]


def test_main_runs_selected_transport(monkeypatch):
    calls = []
    monkeypatch.setattr("pylon_mcp.core.PylonMCP.run_stdio", lambda self: calls.append("stdio"))
    monkeypatch.setattr("pylon_mcp.core.PylonMCP.run_http", lambda self, host=None, port=None: calls.append("http"))

    main(["stdio"])
    main(["http", "--port", "8123"])

    assert calls == ["stdio", "http"]
