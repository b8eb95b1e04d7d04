#!/usr/bin/env python3
# src/pylon_mcp/types/resources.py
"""
Resources - Resource handler holding static content or a reader function.
"""

import asyncio
import base64
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import orjson

from ..constants import CONTENT_TYPE_JSON

_UNSET: Any = object()


@dataclass
class ResourceHandler:
    """A readable resource addressed by uri.

    Either ``content`` (static, replaceable through ``update_resource``) or
    ``handler`` (called on every read) supplies the body. ``binary``
    resources produce bytes and travel base64-encoded as ``blob``.
    """

    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = None
    binary: bool = False
    handler: Callable[[], Any] | None = None
    _content: Any = _UNSET

    @classmethod
    def from_function(
        cls,
        uri: str,
        func: Callable[[], Any],
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
        binary: bool = False,
    ) -> "ResourceHandler":
        """Create a ResourceHandler whose body comes from calling ``func``."""
        doc = inspect.getdoc(func)
        return cls(
            uri=uri,
            name=name or func.__name__.replace("_", " ").title(),
            description=description or (doc.splitlines()[0] if doc else None),
            mime_type=mime_type,
            binary=binary,
            handler=func,
        )

    @classmethod
    def from_content(
        cls,
        uri: str,
        content: str | bytes,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> "ResourceHandler":
        """Create a ResourceHandler with static content."""
        return cls(
            uri=uri,
            name=name or uri,
            description=description,
            mime_type=mime_type,
            binary=isinstance(content, bytes),
            _content=content,
        )

    @property
    def content(self) -> Any:
        return None if self._content is _UNSET else self._content

    @content.setter
    def content(self, value: Any) -> None:
        # Replacing content detaches any reader function
        self._content = value
        self.handler = None

    def to_mcp_format(self) -> dict[str, Any]:
        """Convert to the ``resources/list`` entry format."""
        entry: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.description:
            entry["description"] = self.description
        if self.mime_type:
            entry["mimeType"] = self.mime_type
        return entry

    async def read(self) -> str | bytes:
        """Read the current body."""
        if self.handler is not None:
            if inspect.iscoroutinefunction(self.handler):
                result = await self.handler()
            else:
                result = await asyncio.to_thread(self.handler)
        else:
            result = self.content
        return self._normalize(result)

    async def read_contents(self) -> dict[str, Any]:
        """Read the body as one ``resources/read`` contents entry."""
        body = await self.read()
        entry: dict[str, Any] = {"uri": self.uri}
        if self.mime_type:
            entry["mimeType"] = self.mime_type
        if self.binary:
            raw = body if isinstance(body, bytes) else body.encode()
            entry["blob"] = base64.b64encode(raw).decode("ascii")
        else:
            entry["text"] = body.decode() if isinstance(body, bytes) else body
        return entry

    def _normalize(self, result: Any) -> str | bytes:
        if result is None:
            return b"" if self.binary else ""
        if isinstance(result, str | bytes):
            return result
        if self.binary and isinstance(result, bytearray | memoryview):
            return bytes(result)
        if isinstance(result, dict | list):
            option = orjson.OPT_INDENT_2 if self.mime_type == CONTENT_TYPE_JSON else 0
            return orjson.dumps(result, option=option).decode()
        return str(result)


__all__ = ["ResourceHandler"]
