#!/usr/bin/env python3
# src/pylon_mcp/transport/__init__.py
"""
Transport package - stdio and HTTP bindings for the protocol handler.
"""

from .auth import AuthConfig, AuthenticatedHttpTransport
from .base import Transport
from .framing import MessageFramer, read_frames
from .http import Connection, HttpTransport
from .stdio import StdioTransport, run_stdio_server

__all__ = [
    "AuthConfig",
    "AuthenticatedHttpTransport",
    "Connection",
    "HttpTransport",
    "MessageFramer",
    "StdioTransport",
    "Transport",
    "read_frames",
    "run_stdio_server",
]
