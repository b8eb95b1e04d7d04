#!/usr/bin/env python3
"""
app.py - Host Starlette application served behind the MCP HTTP transport.

Routes here see only requests the transport does not claim (paths outside
the MCP prefix).
"""

import time
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from .constants import PROTOCOL_VERSION
from .transport.http import json_response

if TYPE_CHECKING:
    from .core import PylonMCP

_START_TIME = time.time()


def create_app(server: "PylonMCP", debug: bool = False) -> Starlette:
    """
    Create the host application.

    Args:
        server: Server whose registries the informational routes describe
        debug: Starlette debug mode
    """

    async def health_endpoint(request: Request) -> Response:
        return json_response(
            {
                "status": "healthy",
                "server": server.name,
                "version": server.version,
                "uptime": round(time.time() - _START_TIME, 3),
            }
        )

    async def info_endpoint(request: Request) -> Response:
        protocol = server.protocol
        return json_response(
            {
                "server": protocol.server_info.model_dump(exclude_none=True),
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": protocol.capabilities,
                "initialized": protocol.state.initialized,
                "tools": [tool["name"] for tool in protocol.get_tools_list()],
                "resources": [resource["uri"] for resource in protocol.get_resources_list()],
                "prompts": [prompt["name"] for prompt in protocol.get_prompts_list()],
            }
        )

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
            max_age=3600,
        ),
    ]

    routes = [
        Route("/health", health_endpoint, methods=["GET"]),
        Route("/", info_endpoint, methods=["GET"]),
    ]

    return Starlette(debug=debug, routes=routes, middleware=middleware)
