"""
Structured error types for pylon_mcp.

Provides errors that carry a JSON-RPC code, plus message helpers that
suggest the closest registered name when a lookup misses.
"""

from difflib import get_close_matches

from .constants import JsonRpcError


class MCPError(Exception):
    """Structured MCP error with an optional fix suggestion."""

    def __init__(
        self,
        message: str,
        code: int = JsonRpcError.INVALID_PARAMS,
        suggestion: str | None = None,
    ):
        self.code = code
        self.suggestion = suggestion
        super().__init__(message)

    def to_message(self) -> str:
        """Format the error with suggestion."""
        if self.suggestion:
            return f"{self} | Suggestion: {self.suggestion}"
        return str(self)


class InvalidArgumentsError(MCPError):
    """Arguments passed to a tool or prompt failed validation."""


class MessageTooLargeError(MCPError):
    """A framed message exceeded the configured size ceiling."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Message too large: exceeds limit of {limit} bytes", code=JsonRpcError.MESSAGE_TOO_LARGE)


class ConnectionClosedError(Exception):
    """Raised when pushing to a streaming connection that is gone."""


def suggest_name(name: str, available: list[str]) -> str | None:
    """Find the closest matching name using fuzzy matching.

    Args:
        name: The unknown name.
        available: Registered names.

    Returns:
        The closest match, or None if no good match found.
    """
    matches = get_close_matches(name, available, n=1, cutoff=0.6)
    return matches[0] if matches else None


def format_not_found_error(kind: str, name: str, available: list[str]) -> str:
    """Create a "<kind> not found" message, with a suggestion when one is close.

    Args:
        kind: Human label of the registry ("Tool", "Prompt").
        name: The requested name.
        available: Registered names.
    """
    message = f"{kind} not found: {name}"
    suggestion = suggest_name(name, available)
    if suggestion:
        message += f". Did you mean '{suggestion}'?"
    return message
