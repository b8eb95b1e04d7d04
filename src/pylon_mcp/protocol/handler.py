#!/usr/bin/env python3
# src/pylon_mcp/protocol/handler.py
"""
Protocol Handler - Core MCP dispatch shared by the stdio and HTTP transports.

Decodes a JSON-RPC message, drives the handshake state, routes to the tool,
resource and prompt registries, tracks resource subscriptions and pushes
notifications through whichever transport is attached.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import orjson

from ..constants import (
    JSONRPC_KEY,
    JSONRPC_VERSION,
    KEY_CAPABILITIES,
    KEY_CLIENT_INFO,
    KEY_ERROR,
    KEY_ID,
    KEY_METHOD,
    KEY_PARAMS,
    KEY_PROTOCOL_VERSION,
    KEY_RESULT,
    KEY_SERVER_INFO,
    PROTOCOL_VERSION,
    STDIO_SUBSCRIBER,
    JsonRpcError,
    McpMethod,
)
from ..errors import InvalidArgumentsError, format_not_found_error
from ..types import (
    PromptHandler,
    ResourceHandler,
    ServerInfo,
    ToolHandler,
    create_server_capabilities,
    format_tool_error,
    format_tool_result,
)
from .session_state import SessionState

if TYPE_CHECKING:
    from ..transport.base import Transport

logger = logging.getLogger(__name__)


# ============================================================================
# Protocol Handler
# ============================================================================


class MCPProtocolHandler:
    """Transport-agnostic MCP dispatcher."""

    def __init__(
        self,
        server_info: ServerInfo,
        capabilities: dict[str, Any] | None = None,
        state: SessionState | None = None,
    ):
        self.server_info = server_info
        self.capabilities = create_server_capabilities(capabilities)
        self.state = state or SessionState()

        # Registries hold references only; owners manage handler lifetimes
        self.tools: dict[str, ToolHandler] = {}
        self.resources: dict[str, ResourceHandler] = {}
        self.prompts: dict[str, PromptHandler] = {}

        self.transport: Transport | None = None
        # Event loop the attached transport serves on
        self.loop: asyncio.AbstractEventLoop | None = None

        logger.debug("MCP protocol handler initialized")

    # ================================================================
    # Transport
    # ================================================================

    def attach_transport(self, transport: "Transport") -> None:
        """Route outbound notifications through ``transport``.

        Must be called from the event loop the transport serves on, which
        is recorded so other threads can hand notifications to it.
        """
        loop = asyncio.get_running_loop()
        with self.state.lock:
            self.transport = transport
            self.loop = loop
        logger.debug(f"Attached transport {type(transport).__name__}")

    def detach_transport(self, transport: "Transport | None" = None) -> None:
        with self.state.lock:
            if transport is None or self.transport is transport:
                self.transport = None
                self.loop = None

    def drop_subscriber(self, subscriber_id: str) -> list[str]:
        """Forget every subscription held by a subscriber that went away."""
        return self.state.drop_subscriber(subscriber_id)

    # ================================================================
    # Registration
    # ================================================================

    def register_tool(self, tool: ToolHandler) -> None:
        """Register a tool handler."""
        with self.state.lock:
            self.tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def register_resource(self, resource: ResourceHandler) -> None:
        """Register a resource handler."""
        with self.state.lock:
            self.resources[resource.uri] = resource
        logger.debug(f"Registered resource: {resource.uri}")

    def register_prompt(self, prompt: PromptHandler) -> None:
        """Register a prompt handler."""
        with self.state.lock:
            self.prompts[prompt.name] = prompt
        logger.debug(f"Registered prompt: {prompt.name}")

    def unregister_resource(self, uri: str) -> ResourceHandler | None:
        """Remove a resource and any subscriptions to it."""
        with self.state.lock:
            resource = self.resources.pop(uri, None)
            if resource is not None:
                self.state.drop_uri(uri)
        return resource

    def unregister_prompt(self, name: str) -> PromptHandler | None:
        with self.state.lock:
            return self.prompts.pop(name, None)

    def get_tools_list(self) -> list[dict[str, Any]]:
        """Get list of tools in MCP format."""
        with self.state.lock:
            handlers = list(self.tools.values())
        return [tool_handler.to_mcp_format() for tool_handler in handlers]

    def get_resources_list(self) -> list[dict[str, Any]]:
        """Get list of resources in MCP format."""
        with self.state.lock:
            handlers = list(self.resources.values())
        return [resource_handler.to_mcp_format() for resource_handler in handlers]

    def get_prompts_list(self) -> list[dict[str, Any]]:
        """Get list of prompts in MCP format."""
        with self.state.lock:
            handlers = list(self.prompts.values())
        return [prompt_handler.to_mcp_format() for prompt_handler in handlers]

    # ================================================================
    # Entry points
    # ================================================================

    async def handle_message(
        self, raw: str | bytes | dict[str, Any], subscriber_id: str = STDIO_SUBSCRIBER
    ) -> dict[str, Any] | None:
        """Decode and handle one inbound message.

        Returns the response to send back, or None for notifications and for
        requests that are deliberately left unanswered.
        """
        if isinstance(raw, str | bytes | bytearray):
            try:
                message = orjson.loads(raw)
            except orjson.JSONDecodeError as e:
                logger.debug(f"Unparsable message: {e}")
                return self._create_error_response(None, JsonRpcError.INVALID_REQUEST, "Invalid Request")
        else:
            message = raw
        return await self.handle_request(message, subscriber_id)

    async def handle_request(self, message: Any, subscriber_id: str = STDIO_SUBSCRIBER) -> dict[str, Any] | None:
        """Handle an already-decoded JSON-RPC message."""
        if not isinstance(message, dict):
            return self._create_error_response(None, JsonRpcError.INVALID_REQUEST, "Invalid Request")

        msg_id = message.get(KEY_ID)
        method = message.get(KEY_METHOD)
        if message.get(JSONRPC_KEY) != JSONRPC_VERSION or not isinstance(method, str):
            return self._create_error_response(msg_id, JsonRpcError.INVALID_REQUEST, "Invalid Request")

        params = message.get(KEY_PARAMS) or {}
        is_notification = msg_id is None

        logger.debug(f"Handling {method} (ID: {msg_id})")

        try:
            if not isinstance(params, dict):
                response = self._create_error_response(
                    msg_id, JsonRpcError.INVALID_PARAMS, "Invalid params: params must be an object"
                )
            elif is_notification and method == McpMethod.INITIALIZED:
                self._handle_initialized_notification()
                return None
            else:
                response = await self._route(method, params, msg_id, subscriber_id)
        except asyncio.CancelledError:
            raise  # Never swallow cancellation
        except Exception as e:
            logger.exception(f"Error handling {method} (ID: {msg_id}): {e}")
            response = self._create_error_response(msg_id, JsonRpcError.INVALID_REQUEST, f"Internal error: {e}")

        if is_notification:
            if response is not None:
                logger.debug(f"Discarding reply to notification {method}")
            return None
        return response

    async def _route(
        self, method: str, params: dict[str, Any], msg_id: Any, subscriber_id: str
    ) -> dict[str, Any] | None:
        if method == McpMethod.PING:
            return self._handle_ping(msg_id)
        elif method == McpMethod.INITIALIZE:
            return self._handle_initialize(params, msg_id)
        elif method == McpMethod.TOOLS_LIST:
            return self._create_result_response(msg_id, {"tools": self.get_tools_list()})
        elif method == McpMethod.TOOLS_CALL:
            return await self._handle_tools_call(params, msg_id)
        elif method == McpMethod.RESOURCES_LIST:
            return self._create_result_response(msg_id, {"resources": self.get_resources_list()})
        elif method == McpMethod.RESOURCES_READ:
            return await self._handle_resources_read(params, msg_id)
        elif method == McpMethod.RESOURCES_SUBSCRIBE:
            return self._handle_resources_subscribe(params, msg_id, subscriber_id)
        elif method == McpMethod.RESOURCES_UNSUBSCRIBE:
            return self._handle_resources_unsubscribe(params, msg_id, subscriber_id)
        elif method == McpMethod.PROMPTS_LIST:
            return self._create_result_response(msg_id, {"prompts": self.get_prompts_list()})
        elif method == McpMethod.PROMPTS_GET:
            return await self._handle_prompts_get(params, msg_id)
        else:
            return self._create_error_response(msg_id, JsonRpcError.METHOD_NOT_FOUND, f"Method not found: {method}")

    # ================================================================
    # Handshake
    # ================================================================

    def _handle_ping(self, msg_id: Any) -> dict[str, Any]:
        return self._create_result_response(msg_id, {})

    def _handle_initialize(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        """Answer initialize; any requested version gets the one this server speaks."""
        client_info = params.get(KEY_CLIENT_INFO) or {}
        client_capabilities = params.get(KEY_CAPABILITIES) or {}
        self.state.record_client(client_info, client_capabilities)

        requested = params.get(KEY_PROTOCOL_VERSION)
        if requested and requested != PROTOCOL_VERSION:
            logger.debug(f"Client asked for protocol {requested}; answering with {PROTOCOL_VERSION}")
        logger.info(f"Initialize from {client_info.get('name', 'unknown')} {client_info.get('version', '')}".rstrip())

        result = {
            KEY_PROTOCOL_VERSION: PROTOCOL_VERSION,
            KEY_CAPABILITIES: self.capabilities,
            KEY_SERVER_INFO: self.server_info.model_dump(exclude_none=True),
        }
        return self._create_result_response(msg_id, result)

    def _handle_initialized_notification(self) -> None:
        if self.state.mark_initialized():
            logger.info("Client initialized")
        else:
            logger.debug("Repeated initialized notification ignored")

    # ================================================================
    # Tools
    # ================================================================

    async def _handle_tools_call(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        """Handle tools/call; tool failures come back as successful ``isError`` results."""
        tool_name = params.get("name")
        arguments = params.get("arguments") or {}

        if not tool_name:
            return self._create_error_response(msg_id, JsonRpcError.INVALID_PARAMS, "Invalid params: missing tool name")

        with self.state.lock:
            tool = self.tools.get(tool_name)
            available = list(self.tools)
        if tool is None:
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, format_not_found_error("Tool", tool_name, available)
            )
        if not isinstance(arguments, dict):
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, "Invalid params: arguments must be an object"
            )

        try:
            result = await tool.validate_and_call(arguments)
        except asyncio.CancelledError:
            raise
        except InvalidArgumentsError as e:
            logger.info(f"Invalid arguments for tool {tool_name}: {e}")
            return self._create_result_response(msg_id, format_tool_error(str(e)))
        except Exception as e:
            logger.exception(f"Tool {tool_name} failed: {e}")
            return self._create_result_response(msg_id, format_tool_error(str(e)))

        return self._create_result_response(msg_id, format_tool_result(result))

    # ================================================================
    # Resources
    # ================================================================

    async def _handle_resources_read(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        uri = params.get("uri")
        if not uri:
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, "Invalid params: missing resource URI"
            )

        with self.state.lock:
            resource = self.resources.get(uri)
        if resource is None:
            return self._create_error_response(msg_id, JsonRpcError.INVALID_PARAMS, f"Resource not found: {uri}")

        try:
            contents = await resource.read_contents()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Resource read error for {uri}: {e}")
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, f"Error reading resource {uri}: {e}"
            )

        logger.debug(f"Read resource {uri}")
        return self._create_result_response(msg_id, {"contents": [contents]})

    def _handle_resources_subscribe(
        self, params: dict[str, Any], msg_id: Any, subscriber_id: str
    ) -> dict[str, Any] | None:
        """Handle resources/subscribe; unanswered until the client is initialized."""
        if not self.state.initialized:
            logger.debug("Ignoring resources/subscribe before initialization")
            return None

        uri = params.get("uri")
        if not uri:
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, "Invalid params: missing resource URI"
            )

        with self.state.lock:
            known = uri in self.resources
            if known:
                self.state.subscribe(uri, subscriber_id)
        if not known:
            return self._create_error_response(msg_id, JsonRpcError.INVALID_PARAMS, f"Resource not found: {uri}")

        logger.debug(f"Subscriber {subscriber_id} subscribed to {uri}")
        return self._create_result_response(msg_id, {"subscribed": True})

    def _handle_resources_unsubscribe(
        self, params: dict[str, Any], msg_id: Any, subscriber_id: str
    ) -> dict[str, Any] | None:
        """Handle resources/unsubscribe; removing an absent pair is not an error."""
        if not self.state.initialized:
            logger.debug("Ignoring resources/unsubscribe before initialization")
            return None

        uri = params.get("uri")
        if not uri:
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, "Invalid params: missing resource URI"
            )

        with self.state.lock:
            known = uri in self.resources or self.state.is_subscribed(uri, subscriber_id)
            removed = self.state.unsubscribe(uri, subscriber_id)
        if not known:
            return self._create_error_response(msg_id, JsonRpcError.INVALID_PARAMS, f"Resource not found: {uri}")

        if removed:
            logger.debug(f"Subscriber {subscriber_id} unsubscribed from {uri}")
        return self._create_result_response(msg_id, {"unsubscribed": True})

    # ================================================================
    # Prompts
    # ================================================================

    async def _handle_prompts_get(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        """Handle prompts/get; every prompt failure is an invalid-params error."""
        prompt_name = params.get("name")
        arguments = params.get("arguments") or {}

        if not prompt_name:
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, "Invalid params: missing prompt name"
            )

        with self.state.lock:
            prompt = self.prompts.get(prompt_name)
            available = list(self.prompts)
        if prompt is None:
            return self._create_error_response(
                msg_id, JsonRpcError.INVALID_PARAMS, format_not_found_error("Prompt", prompt_name, available)
            )

        try:
            if not isinstance(arguments, dict):
                raise InvalidArgumentsError("arguments must be an object")
            messages = await prompt.validate_and_render(arguments)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error getting prompt {prompt_name}: {e}")
            return self._create_error_response(msg_id, JsonRpcError.INVALID_PARAMS, f"Error: {e}")

        result: dict[str, Any] = {"messages": messages}
        if prompt.description:
            result["description"] = prompt.description
        logger.debug(f"Rendered prompt {prompt_name} ({len(messages)} messages)")
        return self._create_result_response(msg_id, result)

    # ================================================================
    # Outbound notifications
    # ================================================================

    async def notify_resource_updated(self, uri: str) -> None:
        """
        Send a resource updated notification to subscribed clients.

        Nothing is sent, and nothing is queued for later, unless a transport
        is attached and the client has completed initialization.

        Args:
            uri: URI of the resource that was updated
        """
        with self.state.lock:
            transport = self.transport
            ready = self.state.initialized
            resource = self.resources.get(uri)
            subscribers = self.state.subscribers(uri)

        if transport is None or not ready or resource is None or not subscribers:
            return

        notification = {
            JSONRPC_KEY: JSONRPC_VERSION,
            KEY_METHOD: McpMethod.NOTIFICATIONS_RESOURCES_UPDATED,
            KEY_PARAMS: {"uri": uri, "name": resource.name, "mimeType": resource.mime_type},
        }
        await self._push(transport, notification, subscribers)

    async def notify_resources_list_changed(self) -> None:
        """Send notifications/resources/listChanged to all connected clients."""
        await self._broadcast(McpMethod.NOTIFICATIONS_RESOURCES_LIST_CHANGED)

    async def notify_prompts_list_changed(self) -> None:
        """Send notifications/prompts/list_changed to all connected clients."""
        await self._broadcast(McpMethod.NOTIFICATIONS_PROMPTS_LIST_CHANGED)

    async def _broadcast(self, method: str) -> None:
        with self.state.lock:
            transport = self.transport
            ready = self.state.initialized
        if transport is None or not ready:
            return
        notification = {JSONRPC_KEY: JSONRPC_VERSION, KEY_METHOD: method, KEY_PARAMS: {}}
        await self._push(transport, notification, None)

    async def _push(self, transport: "Transport", notification: dict[str, Any], subscribers: set[str] | None) -> None:
        try:
            await transport.send_message(notification, subscribers)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to send {notification[KEY_METHOD]}: {e}")

    # ================================================================
    # Response builders
    # ================================================================

    def _create_result_response(self, msg_id: Any, result: dict[str, Any]) -> dict[str, Any]:
        return {JSONRPC_KEY: JSONRPC_VERSION, KEY_ID: msg_id, KEY_RESULT: result}

    def _create_error_response(self, msg_id: Any, code: int, message: str) -> dict[str, Any]:
        """Create error response."""
        return {JSONRPC_KEY: JSONRPC_VERSION, KEY_ID: msg_id, KEY_ERROR: {"code": int(code), "message": message}}
