#!/usr/bin/env python3
# src/pylon_mcp/types/base.py
"""
Base - Direct chuk_mcp type imports shared by the handler modules.
"""

from chuk_mcp.protocol.types import (
    AudioContent,
    EmbeddedResource,
    ImageContent,
    ServerInfo,
    TextContent,
    content_to_dict,
    create_text_content,
)

__all__ = [
    "AudioContent",
    "EmbeddedResource",
    "ImageContent",
    "ServerInfo",
    "TextContent",
    "content_to_dict",
    "create_text_content",
]
