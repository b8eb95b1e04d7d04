#!/usr/bin/env python3
# src/pylon_mcp/__init__.py
"""
pylon_mcp - MCP server over stdio and HTTP with resource subscriptions.
"""

from .config import ServerConfig
from .constants import PROTOCOL_VERSION, SERVER_VERSION
from .core import PylonMCP
from .errors import InvalidArgumentsError, MCPError
from .protocol import MCPProtocolHandler, SessionState
from .transport import (
    AuthConfig,
    AuthenticatedHttpTransport,
    HttpTransport,
    MessageFramer,
    StdioTransport,
    Transport,
)
from .types import PromptHandler, ResourceHandler, ToolHandler, message, messages

__version__ = SERVER_VERSION

__all__ = [
    "AuthConfig",
    "AuthenticatedHttpTransport",
    "HttpTransport",
    "InvalidArgumentsError",
    "MCPError",
    "MCPProtocolHandler",
    "MessageFramer",
    "PROTOCOL_VERSION",
    "PromptHandler",
    "PylonMCP",
    "ResourceHandler",
    "ServerConfig",
    "SessionState",
    "StdioTransport",
    "ToolHandler",
    "Transport",
    "message",
    "messages",
]
