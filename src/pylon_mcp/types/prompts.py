#!/usr/bin/env python3
# src/pylon_mcp/types/prompts.py
"""
Prompts - Prompt handler and message builders.

A prompt renders to an ordered list of ``{role, content}`` messages. The
builders here validate roles and content so a handler can write::

    return messages({"user": "Describe this", "assistant": "Sure", "user_2": "Go on"})
"""

import asyncio
import inspect
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .parameters import ToolParameter, extract_parameters_from_function, validate_arguments

ROLES = ("user", "assistant")

CONTENT_TYPE_TEXT = "text"
CONTENT_TYPE_IMAGE = "image"
CONTENT_TYPE_RESOURCE = "resource"

_ROLE_SUFFIX = re.compile(r"_\d+$")


# ============================================================================
# Content Builders
# ============================================================================


def text_content(text: str) -> dict[str, Any]:
    return {"type": CONTENT_TYPE_TEXT, "text": text}


def image_content(data: str, mime_type: str) -> dict[str, Any]:
    return {"type": CONTENT_TYPE_IMAGE, "data": data, "mimeType": mime_type}


def resource_content(uri: str, mime_type: str, text: str | None = None, blob: str | None = None) -> dict[str, Any]:
    resource: dict[str, Any] = {"uri": uri, "mimeType": mime_type}
    if text is not None:
        resource["text"] = text
    if blob is not None:
        resource["blob"] = blob
    return {"type": CONTENT_TYPE_RESOURCE, "resource": resource}


def validate_role(role: str) -> str:
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of: {', '.join(ROLES)}")
    return role


def validate_content(content: Any) -> dict[str, Any]:
    """Check a content dict has the fields its ``type`` requires."""
    if not isinstance(content, dict) or not content.get("type"):
        raise ValueError(f"Invalid content: {content!r}. Must be a dict with a 'type' key")

    content_type = content["type"]
    if content_type == CONTENT_TYPE_TEXT:
        if content.get("text") is None:
            raise ValueError("Missing 'text' in text content")
    elif content_type == CONTENT_TYPE_IMAGE:
        if not content.get("data"):
            raise ValueError("Missing 'data' in image content")
        if not content.get("mimeType"):
            raise ValueError("Missing 'mimeType' in image content")
    elif content_type == CONTENT_TYPE_RESOURCE:
        resource = content.get("resource")
        if not resource:
            raise ValueError("Missing 'resource' in resource content")
        if not resource.get("uri"):
            raise ValueError("Missing 'uri' in resource content")
        if not resource.get("mimeType"):
            raise ValueError("Missing 'mimeType' in resource content")
        if resource.get("text") is None and resource.get("blob") is None:
            raise ValueError("Resource must have either 'text' or 'blob'")
    else:
        raise ValueError(f"Invalid content type: {content_type}")
    return content


def message(role: str, content: Any) -> dict[str, Any]:
    """Build one prompt message; plain strings become text content."""
    if not isinstance(content, dict):
        content = text_content(str(content))
    return {"role": validate_role(role), "content": validate_content(content)}


def messages(*entries: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Build an ordered message list.

    Accepts one mapping of ``role -> content`` or several single-key
    mappings. A numeric suffix on the role key (``user_2``) is dropped so a
    role can repeat inside one mapping.
    """
    if not entries or all(not entry for entry in entries):
        raise ValueError("At least one message must be provided")

    result = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise ValueError("Each message must be a mapping of role to content")
        for role_key, content in entry.items():
            result.append(message(_ROLE_SUFFIX.sub("", str(role_key)), content))
    return result


# ============================================================================
# Prompt Handler
# ============================================================================


@dataclass
class PromptHandler:
    """A named prompt template rendered by calling its handler."""

    name: str
    handler: Callable[..., Any]
    description: str | None = None
    parameters: list[ToolParameter] = field(default_factory=list)

    @classmethod
    def from_function(
        cls, func: Callable[..., Any], name: str | None = None, description: str | None = None
    ) -> "PromptHandler":
        doc = inspect.getdoc(func)
        return cls(
            name=name or func.__name__,
            handler=func,
            description=description or (doc.splitlines()[0] if doc else None),
            parameters=extract_parameters_from_function(func),
        )

    def to_mcp_format(self) -> dict[str, Any]:
        """Convert to the ``prompts/list`` entry format."""
        entry: dict[str, Any] = {
            "name": self.name,
            "arguments": [
                {"name": param.name, "required": param.required}
                | ({"description": param.description} if param.description else {})
                for param in self.parameters
            ],
        }
        if self.description:
            entry["description"] = self.description
        return entry

    async def validate_and_render(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        """Validate arguments and render the prompt to its message list.

        Raises:
            InvalidArgumentsError: when the arguments do not fit the prompt.
            ValueError: when the handler produces malformed messages.
        """
        validated = validate_arguments(f"Prompt '{self.name}'", self.parameters, arguments)
        if inspect.iscoroutinefunction(self.handler):
            result = await self.handler(**validated)
        else:
            result = await asyncio.to_thread(self.handler, **validated)
        return self._to_messages(result)

    @staticmethod
    def _to_messages(result: Any) -> list[dict[str, Any]]:
        if isinstance(result, str):
            return [message("user", result)]
        if isinstance(result, dict) and isinstance(result.get("messages"), list):
            return result["messages"]
        if isinstance(result, list):
            return result
        raise ValueError(f"Prompt returned unsupported value of type {type(result).__name__}")


__all__ = [
    "PromptHandler",
    "ROLES",
    "image_content",
    "message",
    "messages",
    "resource_content",
    "text_content",
    "validate_content",
    "validate_role",
]
