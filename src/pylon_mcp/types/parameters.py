#!/usr/bin/env python3
# src/pylon_mcp/types/parameters.py
"""
Parameters - Tool and prompt parameter definitions, JSON Schema generation
and argument coercion.

Parameters are inferred from a handler's signature; the same definitions
drive both the advertised input schema and the validation applied before
the handler runs.
"""

import inspect
import typing
from dataclasses import dataclass
from types import UnionType
from typing import Any, Union

import orjson

from ..errors import InvalidArgumentsError

# ============================================================================
# Type Mapping
# ============================================================================

_TYPE_MAP: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}

_TRUE_STRINGS = {"true", "1", "yes", "on", "t", "y"}
_FALSE_STRINGS = {"false", "0", "no", "off", "f", "n"}


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Strip ``None`` from ``Optional[T]`` / ``T | None``; report whether it was there."""
    origin = typing.get_origin(annotation)
    if origin is Union or origin is UnionType:
        args = typing.get_args(annotation)
        non_none = tuple(arg for arg in args if arg is not type(None))
        if len(non_none) == 1:
            return non_none[0], len(non_none) != len(args)
        # Multiple union types - numeric unions collapse to "number"
        if all(arg in (int, float) for arg in non_none):
            return float, len(non_none) != len(args)
        return str, len(non_none) != len(args)
    return annotation, False


# ============================================================================
# Parameter Definition
# ============================================================================


@dataclass
class ToolParameter:
    """A single handler parameter and its JSON Schema shape."""

    name: str
    type: str
    description: str | None = None
    required: bool = True
    default: Any = None
    enum: list[Any] | None = None
    items_type: str | None = None
    has_default: bool = False

    @classmethod
    def from_annotation(cls, name: str, annotation: Any, default: Any = inspect.Parameter.empty) -> "ToolParameter":
        """Create a parameter from a function annotation."""
        annotation, optional = _unwrap_optional(annotation)

        param_type = "string"
        enum_values = None
        items_type = None

        if annotation in _TYPE_MAP:
            param_type = _TYPE_MAP[annotation]
        else:
            origin = typing.get_origin(annotation)
            args = typing.get_args(annotation)

            if origin is typing.Literal:
                enum_values = list(args)
                first = type(args[0]) if args else str
                param_type = _TYPE_MAP.get(first, "string")
            elif origin is list:
                param_type = "array"
                if args:
                    items_type = _TYPE_MAP.get(args[0], "string")
            elif origin is dict:
                param_type = "object"

        required = default is inspect.Parameter.empty and not optional
        actual_default = None if default is inspect.Parameter.empty else default

        return cls(
            name=name,
            type=param_type,
            required=required,
            default=actual_default,
            enum=enum_values,
            items_type=items_type,
            has_default=default is not inspect.Parameter.empty,
        )

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format."""
        schema: dict[str, Any] = {"type": self.type}
        if self.type == "array" and self.items_type:
            schema["items"] = {"type": self.items_type}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = self.enum
        if self.default is not None:
            schema["default"] = self.default
        return schema

    def coerce(self, value: Any) -> Any:
        """Convert a wire value to the parameter's type.

        Raises:
            ValueError: when the value cannot represent the declared type.
        """
        converted = self._convert(value)
        if self.enum and converted not in self.enum:
            raise ValueError(f"Value '{converted}' must be one of {self.enum}")
        return converted

    def _convert(self, value: Any) -> Any:
        if self.type == "integer":
            if isinstance(value, bool):
                raise ValueError(f"Cannot convert boolean {value} to integer")
            if isinstance(value, int):
                return value
            if isinstance(value, float):
                if value.is_integer():
                    return int(value)
                raise ValueError(f"Cannot convert float {value} to integer without precision loss")
            if isinstance(value, str):
                try:
                    return int(value)
                except ValueError:
                    raise ValueError(f"Cannot convert string '{value}' to integer") from None
            raise ValueError(f"Cannot convert {type(value).__name__} to integer")

        if self.type == "number":
            if isinstance(value, bool):
                raise ValueError(f"Cannot convert boolean {value} to number")
            if isinstance(value, int | float):
                return float(value)
            if isinstance(value, str):
                try:
                    return float(value)
                except ValueError:
                    raise ValueError(f"Cannot convert string '{value}' to number") from None
            raise ValueError(f"Cannot convert {type(value).__name__} to number")

        if self.type == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                lower_val = value.lower()
                if lower_val in _TRUE_STRINGS:
                    return True
                if lower_val in _FALSE_STRINGS:
                    return False
                raise ValueError(f"Cannot convert string '{value}' to boolean")
            if isinstance(value, int | float):
                return bool(value)
            raise ValueError(f"Cannot convert {type(value).__name__} to boolean")

        if self.type == "string":
            if isinstance(value, str):
                return value
            if isinstance(value, dict | list):
                raise ValueError(f"Cannot convert {type(value).__name__} to string")
            return str(value)

        if self.type == "array":
            if isinstance(value, list):
                return value
            if isinstance(value, tuple | set):
                return list(value)
            if isinstance(value, str):
                try:
                    parsed = orjson.loads(value)
                except orjson.JSONDecodeError:
                    raise ValueError(f"Cannot convert string '{value}' to array") from None
                if isinstance(parsed, list):
                    return parsed
            raise ValueError(f"Cannot convert {type(value).__name__} to array")

        if self.type == "object":
            if isinstance(value, dict):
                return value
            if isinstance(value, str):
                try:
                    parsed = orjson.loads(value)
                except orjson.JSONDecodeError:
                    raise ValueError(f"Cannot convert string '{value}' to object") from None
                if isinstance(parsed, dict):
                    return parsed
            raise ValueError(f"Cannot convert {type(value).__name__} to object")

        return value


# ============================================================================
# Schema Generation Utilities
# ============================================================================


def build_input_schema(parameters: list[ToolParameter]) -> dict[str, Any]:
    """Build JSON Schema input schema from parameters."""
    properties = {}
    required = []

    for param in parameters:
        properties[param.name] = param.to_json_schema()
        if param.required:
            required.append(param.name)

    return {"type": "object", "properties": properties, "required": required}


def extract_parameters_from_function(func: Any) -> list[ToolParameter]:
    """Extract parameters from a function signature."""
    sig = inspect.signature(func, eval_str=True)
    parameters = []

    for param_name, param in sig.parameters.items():
        if param_name == "self":  # Skip self parameter for methods
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        tool_param = ToolParameter.from_annotation(
            name=param_name,
            annotation=param.annotation if param.annotation != inspect.Parameter.empty else str,
            default=param.default,
        )
        parameters.append(tool_param)

    return parameters


def validate_arguments(owner: str, parameters: list[ToolParameter], arguments: dict[str, Any]) -> dict[str, Any]:
    """Check arguments against parameters and coerce them.

    Raises:
        InvalidArgumentsError: on a missing required argument, an unknown
            argument or a value of the wrong type.
    """
    known = {param.name for param in parameters}
    unknown = sorted(set(arguments) - known)
    if unknown:
        raise InvalidArgumentsError(f"{owner}: unexpected argument(s): {', '.join(unknown)}")

    validated: dict[str, Any] = {}
    for param in parameters:
        if param.name not in arguments or arguments[param.name] is None:
            if param.required:
                raise InvalidArgumentsError(f"{owner}: missing required argument '{param.name}' ({param.type})")
            if not param.has_default:
                # Optional[T] without a default still has to be passed
                validated[param.name] = None
            continue
        try:
            validated[param.name] = param.coerce(arguments[param.name])
        except ValueError as e:
            raise InvalidArgumentsError(f"{owner}: invalid value for '{param.name}': {e}") from e

    return validated


__all__ = [
    "ToolParameter",
    "build_input_schema",
    "extract_parameters_from_function",
    "validate_arguments",
]
