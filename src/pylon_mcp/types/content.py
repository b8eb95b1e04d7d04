#!/usr/bin/env python3
# src/pylon_mcp/types/content.py
"""
Content - Content formatting with orjson

Turns arbitrary handler return values into MCP content lists using the
chuk_mcp content types.
"""

from typing import Any

import orjson
from pydantic import BaseModel

from .base import (
    AudioContent,
    EmbeddedResource,
    ImageContent,
    TextContent,
    content_to_dict,
    create_text_content,
)


def format_content(content: Any) -> list[dict[str, Any]]:
    """Format content as a list of MCP content dicts.

    Args:
        content: The content to format (str, dict, MCP content types, Pydantic models, lists).
    """
    if isinstance(content, str):
        return [content_to_dict(create_text_content(content))]
    if isinstance(content, dict):
        json_str = orjson.dumps(content, option=orjson.OPT_INDENT_2).decode()
        return [content_to_dict(create_text_content(json_str))]
    if isinstance(content, TextContent | ImageContent | AudioContent | EmbeddedResource):
        # Check MCP content types before generic BaseModel
        return [content_to_dict(content)]
    if isinstance(content, BaseModel):
        json_str = orjson.dumps(content.model_dump(), option=orjson.OPT_INDENT_2).decode()
        return [content_to_dict(create_text_content(json_str))]
    if isinstance(content, list):
        items = []
        for item in content:
            items.extend(format_content(item))
        return items
    return [content_to_dict(create_text_content(str(content)))]


def format_tool_result(result: Any) -> dict[str, Any]:
    """Wrap a tool's return value in a ``tools/call`` result.

    A dict that already carries ``content`` is passed through unchanged
    apart from defaulting ``isError``.
    """
    if isinstance(result, dict) and "content" in result:
        formatted = dict(result)
        formatted.setdefault("isError", False)
        return formatted
    return {"content": format_content(result), "isError": False}


def format_tool_error(message: str) -> dict[str, Any]:
    """Build the successful-result envelope used to report a failed tool call."""
    return {"content": [content_to_dict(create_text_content(f"Error: {message}"))], "isError": True}


__all__ = ["format_content", "format_tool_result", "format_tool_error"]
