#!/usr/bin/env python3
# src/pylon_mcp/types/__init__.py
"""
Types package - capability handlers, content formatting and chuk_mcp types.
"""

from .base import ServerInfo, content_to_dict, create_text_content
from .capabilities import create_server_capabilities
from .content import format_content, format_tool_error, format_tool_result
from .parameters import ToolParameter, build_input_schema, extract_parameters_from_function, validate_arguments
from .prompts import PromptHandler, image_content, message, messages, resource_content, text_content
from .resources import ResourceHandler
from .tools import EMPTY_INPUT_SCHEMA, ToolHandler

__all__ = [
    "EMPTY_INPUT_SCHEMA",
    "PromptHandler",
    "ResourceHandler",
    "ServerInfo",
    "ToolHandler",
    "ToolParameter",
    "build_input_schema",
    "content_to_dict",
    "create_server_capabilities",
    "create_text_content",
    "extract_parameters_from_function",
    "format_content",
    "format_tool_error",
    "format_tool_result",
    "image_content",
    "message",
    "messages",
    "resource_content",
    "text_content",
    "validate_arguments",
]
