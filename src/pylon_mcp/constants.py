#!/usr/bin/env python3
"""
Top-level constants shared across the pylon_mcp package.
"""

from enum import IntEnum
from typing import Any

# ---------------------------------------------------------------------------
# JSON-RPC
# ---------------------------------------------------------------------------
JSONRPC_VERSION = "2.0"
JSONRPC_KEY = "jsonrpc"

# JSON-RPC message keys
KEY_METHOD = "method"
KEY_PARAMS = "params"
KEY_ID = "id"
KEY_RESULT = "result"
KEY_ERROR = "error"


class JsonRpcError(IntEnum):
    """JSON-RPC 2.0 error codes, plus the server-defined range in use."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    UNAUTHORIZED = -32000
    MESSAGE_TOO_LARGE = -32001


# ---------------------------------------------------------------------------
# MCP protocol
# ---------------------------------------------------------------------------
PROTOCOL_VERSION = "2024-11-05"


# MCP method names
class McpMethod:
    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    PING = "ping"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"
    RESOURCES_SUBSCRIBE = "resources/subscribe"
    RESOURCES_UNSUBSCRIBE = "resources/unsubscribe"
    PROMPTS_LIST = "prompts/list"
    PROMPTS_GET = "prompts/get"
    NOTIFICATIONS_RESOURCES_UPDATED = "notifications/resources/updated"
    NOTIFICATIONS_RESOURCES_LIST_CHANGED = "notifications/resources/listChanged"
    NOTIFICATIONS_PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"


# MCP initialize parameter keys
KEY_CLIENT_INFO = "clientInfo"
KEY_PROTOCOL_VERSION = "protocolVersion"
KEY_SERVER_INFO = "serverInfo"
KEY_CAPABILITIES = "capabilities"

DEFAULT_CAPABILITIES: dict[str, Any] = {
    "resources": {"subscribe": True, "listChanged": True},
    "tools": {"listChanged": True},
    "prompts": {"listChanged": True},
}


# ---------------------------------------------------------------------------
# MCP metadata attributes (set by decorators, read by core)
# ---------------------------------------------------------------------------
ATTR_MCP_TOOL = "_mcp_tool"
ATTR_MCP_RESOURCE = "_mcp_resource"
ATTR_MCP_PROMPT = "_mcp_prompt"


# ---------------------------------------------------------------------------
# Content types
# ---------------------------------------------------------------------------
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_SSE = "text/event-stream"


# ---------------------------------------------------------------------------
# Subscriber identities
# ---------------------------------------------------------------------------
# Single subscriber used by the stdio transport.
STDIO_SUBSCRIBER = "stdio"
# HTTP submissions that name no push stream; fans out to every open stream.
BROADCAST_SUBSCRIBER = "*"


# ---------------------------------------------------------------------------
# Framing and transport limits
# ---------------------------------------------------------------------------
MAX_MESSAGE_BYTES = 1024 * 1024  # 1 MiB
STDIO_READ_CHUNK_BYTES = 8192
DEFAULT_KEEPALIVE_INTERVAL = 30.0
DEFAULT_ENCODING = "utf-8"


# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------
ENV_MCP_LOG_LEVEL = "MCP_LOG_LEVEL"
ENV_MCP_TRANSPORT = "MCP_TRANSPORT"
ENV_MCP_STDIO = "MCP_STDIO"
ENV_USE_STDIO = "USE_STDIO"
ENV_MCP_HOST = "MCP_HOST"
ENV_MCP_PORT = "MCP_PORT"
ENV_PORT = "PORT"
ENV_MCP_PATH = "MCP_PATH"
ENV_MCP_AUTH_TOKEN = "MCP_AUTH_TOKEN"
ENV_MCP_AUTH_HEADER = "MCP_AUTH_HEADER"
ENV_MCP_AUTH_EXEMPT_PATHS = "MCP_AUTH_EXEMPT_PATHS"
ENV_MCP_MAX_MESSAGE_BYTES = "MCP_MAX_MESSAGE_BYTES"
ENV_MCP_KEEPALIVE_INTERVAL = "MCP_KEEPALIVE_INTERVAL"
ENV_MCP_SERVER_NAME = "MCP_SERVER_NAME"
ENV_MCP_SERVER_VERSION = "MCP_SERVER_VERSION"


# ---------------------------------------------------------------------------
# Network defaults
# ---------------------------------------------------------------------------
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_MCP_PATH = "/mcp"


# ---------------------------------------------------------------------------
# Server identity
# ---------------------------------------------------------------------------
SERVER_NAME = "pylon-mcp"
SERVER_VERSION = "0.3.0"


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
class HttpStatus(IntEnum):
    OK = 200
    ACCEPTED = 202
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    PAYLOAD_TOO_LARGE = 413


HEADER_CORS_ORIGIN = "Access-Control-Allow-Origin"
HEADER_CACHE_CONTROL = "Cache-Control"
HEADER_CONNECTION = "Connection"
HEADER_CONTENT_LENGTH = "content-length"
DEFAULT_AUTH_HEADER = "Authorization"
BEARER_PREFIX = "bearer "
CORS_ALLOW_ALL = "*"
CACHE_NO_CACHE = "no-cache"
CONNECTION_KEEP_ALIVE = "keep-alive"

HEADERS_CORS_NOCACHE: dict[str, str] = {
    HEADER_CORS_ORIGIN: CORS_ALLOW_ALL,
    HEADER_CACHE_CONTROL: CACHE_NO_CACHE,
}

HEADERS_SSE: dict[str, str] = {
    HEADER_CORS_ORIGIN: CORS_ALLOW_ALL,
    HEADER_CACHE_CONTROL: CACHE_NO_CACHE,
    HEADER_CONNECTION: CONNECTION_KEEP_ALIVE,
}

# Sub-paths under the MCP prefix
PATH_MESSAGES = "/messages"
PATH_SSE = "/sse"
QUERY_SESSION_ID = "session_id"

# Push-stream (SSE) framing
SSE_EVENT_ENDPOINT = "endpoint"
SSE_EVENT_MESSAGE = "message"
SSE_KEEPALIVE = b": keep-alive\n\n"
MAX_QUEUED_FRAMES = 1000

ERROR_ENDPOINT_NOT_FOUND = "Endpoint not found"
ERROR_UNAUTHORIZED = "Unauthorized: Invalid or missing authentication token"
