#!/usr/bin/env python3
# src/pylon_mcp/protocol/__init__.py
"""
Protocol package - transport-agnostic MCP dispatch.
"""

from .handler import MCPProtocolHandler
from .session_state import SessionState

__all__ = ["MCPProtocolHandler", "SessionState"]
