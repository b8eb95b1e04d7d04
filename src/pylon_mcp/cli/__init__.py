#!/usr/bin/env python3
# src/pylon_mcp/cli/__init__.py
"""
CLI entry point for pylon-mcp.

Runs an example server over stdio or HTTP.
"""

import argparse
import logging
import os
import sys
from typing import Any

from ..config import ServerConfig
from ..core import PylonMCP
from ..types import messages

LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


def setup_logging(level: str = "warning", debug: bool = False) -> None:
    """Set up logging on stderr; stdout stays reserved for protocol traffic."""
    final_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=final_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
    )


def create_example_server(config: ServerConfig | None = None) -> PylonMCP:
    """Create a small example server with a few tools, a resource and a prompt."""
    server = PylonMCP(config=config)

    @server.tool
    def echo(message: str) -> str:
        """Echo back the provided message."""
        return f"Echo: {message}"

    @server.tool
    def add(a: float, b: float) -> float:
        """Add two numbers together."""
        return a + b

    @server.resource("server://info", name="Server Info", mime_type="application/json")
    def server_info() -> dict[str, Any]:
        """Server name, version and process id."""
        return {
            "name": server.name,
            "version": server.version,
            "transport": server.config.transport,
            "pid": os.getpid(),
        }

    @server.prompt
    def summarize(text: str, style: str = "brief") -> list[dict[str, Any]]:
        """Ask for a summary of some text."""
        return messages(
            {
                "user": f"Summarize the following text in a {style} style:\n\n{text}",
                "assistant": "Here is the summary:",
            }
        )

    return server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pylon-mcp",
        description="MCP server with stdio and HTTP/SSE transports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run in stdio mode (for MCP clients)
  pylon-mcp stdio

  # Run in HTTP mode on a custom port, requiring a token
  pylon-mcp http --port 9000 --auth-token s3cret --auth-exempt /health

  # Pick the transport from the environment
  MCP_TRANSPORT=http pylon-mcp auto

Environment Variables:
  MCP_TRANSPORT          Transport mode (stdio|http)
  MCP_STDIO / USE_STDIO  Set to 1 to force stdio mode
  MCP_HOST, PORT         HTTP bind address
  MCP_PATH               MCP path prefix (default: /mcp)
  MCP_AUTH_TOKEN         Static token; unset disables auth
  MCP_AUTH_HEADER        Header carrying the token (default: Authorization)
  MCP_AUTH_EXEMPT_PATHS  Comma-separated path prefixes that skip auth
  MCP_LOG_LEVEL          Logging level
        """,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--debug", action="store_true", help="Enable debug logging")
    common.add_argument("--log-level", default=None, choices=LOG_LEVELS, help="Logging level")

    http_options = argparse.ArgumentParser(add_help=False)
    http_options.add_argument("--host", default=None, help="Host to bind to")
    http_options.add_argument("--port", type=int, default=None, help="Port to bind to")
    http_options.add_argument("--path", dest="path_prefix", default=None, help="MCP path prefix")
    http_options.add_argument("--auth-token", default=None, help="Require this token on HTTP requests")
    http_options.add_argument("--auth-header", default=None, help="Header carrying the token")
    http_options.add_argument(
        "--auth-exempt", dest="auth_exempt_paths", action="append", default=None, help="Path prefix exempt from auth"
    )

    subparsers = parser.add_subparsers(dest="mode", help="Transport mode", required=True)
    subparsers.add_parser("stdio", parents=[common], help="Run in stdio mode for MCP clients")
    subparsers.add_parser("http", parents=[common, http_options], help="Run in HTTP mode with SSE streaming")
    subparsers.add_parser("auto", parents=[common, http_options], help="Use the transport named by the environment")
    return parser


def resolve_config(args: argparse.Namespace, environ: dict[str, str] | None = None) -> ServerConfig:
    """Environment config with command-line flags layered on top."""
    config = ServerConfig.from_env(environ)
    overrides: dict[str, Any] = {}
    if args.mode in ("stdio", "http"):
        overrides["transport"] = args.mode
    for field in ("host", "port", "path_prefix", "auth_token", "auth_header", "auth_exempt_paths", "log_level"):
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    if not overrides:
        return config
    return ServerConfig.model_validate(config.model_dump() | overrides)


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    config = resolve_config(args)

    default_level = "warning" if config.transport == "stdio" else "info"
    setup_logging(level=config.log_level or default_level, debug=args.debug)

    server = create_example_server(config)
    logging.getLogger(__name__).info(f"Starting pylon-mcp in {config.transport.upper()} mode")
    server.run()


if __name__ == "__main__":
    main()
