#!/usr/bin/env python3
# src/pylon_mcp/core.py
"""
Core - PylonMCP server facade.

Owns the protocol handler and its registries, exposes decorator-based
registration and resource updates, and starts the stdio or HTTP transport.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any

import uvicorn
from starlette.types import ASGIApp

from .app import create_app
from .config import ServerConfig
from .constants import ATTR_MCP_PROMPT, ATTR_MCP_RESOURCE, ATTR_MCP_TOOL
from .errors import MCPError, suggest_name
from .protocol import MCPProtocolHandler
from .transport import AuthConfig, AuthenticatedHttpTransport, HttpTransport, run_stdio_server
from .types import PromptHandler, ResourceHandler, ServerInfo, ToolHandler

logger = logging.getLogger(__name__)

ResourceUpdateCallback = Callable[[dict[str, Any]], Any]


class PylonMCP:
    """
    MCP server with tools, resources and prompts.

    Usage:
        mcp = PylonMCP("demo")

        @mcp.tool
        def add(a: int, b: int) -> int:
            return a + b

        mcp.run()
    """

    def __init__(
        self,
        name: str | None = None,
        version: str | None = None,
        capabilities: dict[str, Any] | None = None,
        config: ServerConfig | None = None,
    ):
        self.config = config or ServerConfig.from_env()
        self.name = name or self.config.server_name
        self.version = version or self.config.server_version
        self.protocol = MCPProtocolHandler(ServerInfo(name=self.name, version=self.version), capabilities)
        self._resource_update_callbacks: dict[str, ResourceUpdateCallback] = {}
        self._pending_notifications: set[asyncio.Task[None]] = set()

    # ============================================================================
    # Decorators
    # ============================================================================

    def tool(self, name: Any = None, description: str | None = None) -> Any:
        """
        Register a function as a tool.

        Usage:
            @mcp.tool
            def hello(name: str) -> str: ...

            @mcp.tool(name="greet", description="Say hello")
            def hello(name: str) -> str: ...
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            tool_handler = ToolHandler.from_function(func, name=name, description=description)
            self.register_tool(tool_handler)
            setattr(func, ATTR_MCP_TOOL, tool_handler)
            return func

        # Handle both @mcp.tool and @mcp.tool() usage
        if callable(name):
            func, name = name, None
            return decorator(func)
        return decorator

    def resource(
        self,
        uri: str,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
        binary: bool = False,
    ) -> Callable[[Callable[[], Any]], Callable[[], Any]]:
        """Register a function whose return value is the body of ``uri``."""

        def decorator(func: Callable[[], Any]) -> Callable[[], Any]:
            resource_handler = ResourceHandler.from_function(
                uri, func, name=name, description=description, mime_type=mime_type, binary=binary
            )
            self.register_resource(resource_handler)
            setattr(func, ATTR_MCP_RESOURCE, resource_handler)
            return func

        return decorator

    def prompt(self, name: Any = None, description: str | None = None) -> Any:
        """Register a function as a prompt; it returns a string or a message list."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            prompt_handler = PromptHandler.from_function(func, name=name, description=description)
            self.register_prompt(prompt_handler)
            setattr(func, ATTR_MCP_PROMPT, prompt_handler)
            return func

        if callable(name):
            func, name = name, None
            return decorator(func)
        return decorator

    # ============================================================================
    # Registration
    # ============================================================================

    def register_tool(self, tool_handler: ToolHandler) -> None:
        self.protocol.register_tool(tool_handler)

    def register_tools(self, *tool_handlers: ToolHandler) -> None:
        for tool_handler in tool_handlers:
            self.register_tool(tool_handler)

    def register_resource(self, resource_handler: ResourceHandler) -> None:
        """Register a resource; connected clients are told the list changed."""
        self.protocol.register_resource(resource_handler)
        self._schedule(self.protocol.notify_resources_list_changed())

    def register_resources(self, *resource_handlers: ResourceHandler) -> None:
        for resource_handler in resource_handlers:
            self.register_resource(resource_handler)

    def register_prompt(self, prompt_handler: PromptHandler) -> None:
        """Register a prompt; connected clients are told the list changed."""
        self.protocol.register_prompt(prompt_handler)
        self._schedule(self.protocol.notify_prompts_list_changed())

    def register_prompts(self, *prompt_handlers: PromptHandler) -> None:
        for prompt_handler in prompt_handlers:
            self.register_prompt(prompt_handler)

    def remove_resource(self, uri: str) -> bool:
        """Remove a resource and its subscriptions. Returns False if it was not registered."""
        if self.protocol.unregister_resource(uri) is None:
            return False
        logger.debug(f"Removed resource: {uri}")
        self._schedule(self.protocol.notify_resources_list_changed())
        return True

    def remove_prompt(self, name: str) -> bool:
        """Remove a prompt. Returns False if it was not registered."""
        if self.protocol.unregister_prompt(name) is None:
            return False
        logger.debug(f"Removed prompt: {name}")
        self._schedule(self.protocol.notify_prompts_list_changed())
        return True

    def read_resource(self, uri: str) -> ResourceHandler:
        """Look up a registered resource.

        Raises:
            MCPError: when no resource is registered at ``uri``.
        """
        with self.protocol.state.lock:
            resource = self.protocol.resources.get(uri)
            available = list(self.protocol.resources)
        if resource is None:
            closest = suggest_name(uri, available)
            raise MCPError(f"Resource not found: {uri}", suggestion=f"Did you mean '{closest}'?" if closest else None)
        return resource

    # ============================================================================
    # Resource updates
    # ============================================================================

    def on_resource_update(self, callback: ResourceUpdateCallback) -> str:
        """Call ``callback`` after every ``update_resource``; returns an id for removal."""
        callback_id = uuid.uuid4().hex
        self._resource_update_callbacks[callback_id] = callback
        return callback_id

    def remove_resource_update_callback(self, callback_id: str) -> bool:
        return self._resource_update_callbacks.pop(callback_id, None) is not None

    async def update_resource(self, uri: str, content: Any) -> bool:
        """
        Replace a resource's content and tell subscribers.

        Args:
            uri: URI of a registered resource
            content: New body (str, bytes, or anything the resource can serialize)

        Returns:
            False when no resource is registered at ``uri``
        """
        with self.protocol.state.lock:
            resource = self.protocol.resources.get(uri)
            if resource is None:
                return False
            resource.content = content

        await self.protocol.notify_resource_updated(uri)

        event = {"uri": uri, "name": resource.name, "mime_type": resource.mime_type, "content": content}
        for callback_id, callback in list(self._resource_update_callbacks.items()):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Resource update callback {callback_id} failed: {e}")
        return True

    def _schedule(self, notification: Any) -> None:
        """Run a notification coroutine on the serving loop.

        Called from the serving loop the coroutine becomes a task; called
        from any other thread it is handed to the serving loop. With no
        transport attached and no loop running it is dropped.
        """
        serving = self.protocol.loop
        try:
            running: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (serving is None or running is serving):
            task = running.create_task(notification)
            self._pending_notifications.add(task)
            task.add_done_callback(self._pending_notifications.discard)
        elif serving is not None and not serving.is_closed():
            asyncio.run_coroutine_threadsafe(notification, serving)
        else:
            notification.close()

    # ============================================================================
    # Transports
    # ============================================================================

    def http_app(self, app: ASGIApp | None = None, auth: AuthConfig | None = None) -> HttpTransport:
        """
        Build the ASGI application for the HTTP transport.

        Args:
            app: Host application for non-MCP paths (defaults to the built-in health/info app)
            auth: Token settings; defaults to the configured ones. Without a
                token the transport is unauthenticated.
        """
        auth = auth or self.config.auth_config()
        options: dict[str, Any] = {
            "path_prefix": self.config.path_prefix,
            "keepalive_interval": self.config.keepalive_interval,
            "max_body_bytes": self.config.max_message_bytes,
        }
        host_app = app if app is not None else create_app(self)
        if auth.enabled:
            return AuthenticatedHttpTransport(self.protocol, app=host_app, auth=auth, **options)
        return HttpTransport(self.protocol, app=host_app, **options)

    def run_http(self, host: str | None = None, port: int | None = None) -> None:
        """Serve over HTTP with uvicorn until interrupted."""
        final_host = host or self.config.host
        final_port = port or self.config.port
        logger.info(f"Starting {self.name} on http://{final_host}:{final_port}{self.config.path_prefix}")
        uvicorn.run(
            self.http_app(),
            host=final_host,
            port=final_port,
            log_level=(self.config.log_level or "info").lower(),
            lifespan="on",
        )

    def run_stdio(self) -> None:
        """Serve over stdin/stdout until stdin closes."""
        run_stdio_server(self.protocol, max_message_bytes=self.config.max_message_bytes)

    def run(self, transport: str | None = None, host: str | None = None, port: int | None = None) -> None:
        """Run with the given transport, or the configured one."""
        if (transport or self.config.transport) == "http":
            self.run_http(host, port)
        else:
            self.run_stdio()
