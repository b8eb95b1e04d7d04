#!/usr/bin/env python3
# src/pylon_mcp/types/tools.py
"""
Tools - Tool handler with signature-derived schema and argument validation.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .parameters import ToolParameter, build_input_schema, extract_parameters_from_function, validate_arguments

logger = logging.getLogger(__name__)

EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}, "required": []}


@dataclass
class ToolHandler:
    """Invocable tool: a name, an input schema and the function behind it."""

    name: str
    handler: Callable[..., Any]
    description: str | None = None
    parameters: list[ToolParameter] = field(default_factory=list)
    input_schema: dict[str, Any] | None = None

    @classmethod
    def from_function(
        cls, func: Callable[..., Any], name: str | None = None, description: str | None = None
    ) -> "ToolHandler":
        """Create a ToolHandler from a function, inferring the schema from its signature."""
        parameters = extract_parameters_from_function(func)
        doc = inspect.getdoc(func)
        return cls(
            name=name or func.__name__,
            handler=func,
            description=description or (doc.splitlines()[0] if doc else None),
            parameters=parameters,
            input_schema=build_input_schema(parameters) if parameters else None,
        )

    def to_mcp_format(self) -> dict[str, Any]:
        """Convert to the ``tools/list`` entry format."""
        return {
            "name": self.name,
            "description": self.description or "",
            "inputSchema": self.input_schema or dict(EMPTY_INPUT_SCHEMA),
        }

    async def validate_and_call(self, arguments: dict[str, Any]) -> Any:
        """Validate arguments, then run the tool.

        Coroutine functions are awaited; plain functions run in a worker
        thread so a slow tool does not stall the event loop.

        Raises:
            InvalidArgumentsError: when the arguments do not fit the schema.
        """
        validated = validate_arguments(f"Tool '{self.name}'", self.parameters, arguments)
        logger.debug(f"Calling tool {self.name} with {sorted(validated)}")

        if inspect.iscoroutinefunction(self.handler):
            return await self.handler(**validated)
        return await asyncio.to_thread(self.handler, **validated)


__all__ = ["ToolHandler", "EMPTY_INPUT_SCHEMA"]
