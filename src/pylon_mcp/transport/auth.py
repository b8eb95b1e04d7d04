#!/usr/bin/env python3
# src/pylon_mcp/transport/auth.py
"""
Static-token authentication for the HTTP transport.

With no token configured every request passes. Otherwise each request
whose path is not under an exempt prefix must carry the token in the
configured header, either bare or as ``Bearer <token>`` (prefix in any
case). Rejected requests get HTTP 401 with a JSON-RPC error body.
"""

import logging
import secrets
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, field_validator
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..constants import (
    BEARER_PREFIX,
    DEFAULT_AUTH_HEADER,
    ERROR_UNAUTHORIZED,
    KEY_ID,
    HttpStatus,
    JsonRpcError,
)
from ..protocol import MCPProtocolHandler
from .http import HttpTransport, jsonrpc_error_response, read_body

logger = logging.getLogger(__name__)


class AuthConfig(BaseModel):
    """Immutable auth settings."""

    model_config = ConfigDict(frozen=True)

    token: str | None = None
    header_name: str = DEFAULT_AUTH_HEADER
    exempt_paths: tuple[str, ...] = ()

    @field_validator("token")
    @classmethod
    def _blank_token_disables(cls, value: str | None) -> str | None:
        return value or None

    @property
    def enabled(self) -> bool:
        return self.token is not None

    def is_exempt(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.exempt_paths)

    @staticmethod
    def extract_token(header_value: str | None) -> str | None:
        """Strip an optional, case-insensitive ``Bearer`` prefix."""
        if header_value is None:
            return None
        value = header_value.strip()
        if value.lower().startswith(BEARER_PREFIX):
            value = value[len(BEARER_PREFIX) :].strip()
        return value or None

    def check(self, header_value: str | None) -> bool:
        if self.token is None:
            return True
        presented = self.extract_token(header_value)
        if presented is None:
            return False
        return secrets.compare_digest(presented.encode(), self.token.encode())


class AuthenticatedHttpTransport(HttpTransport):
    """``HttpTransport`` that checks a static token before accepting a request."""

    def __init__(
        self,
        protocol_handler: MCPProtocolHandler,
        app: ASGIApp | None = None,
        auth: AuthConfig | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(protocol_handler, app=app, **kwargs)
        self.auth = auth or AuthConfig()
        if not self.auth.enabled:
            logger.warning("No auth token configured; HTTP transport accepts unauthenticated requests")

    async def accept(self, request: Request) -> Response | None:
        path = request.url.path
        if self.auth.enabled and not self.auth.is_exempt(path):
            # Header lookup is case-insensitive; hyphens are kept as configured
            if not self.auth.check(request.headers.get(self.auth.header_name.lower())):
                logger.warning(f"Rejected unauthenticated {request.method} {path}")
                return await self._unauthorized(request)
        return await super().accept(request)

    async def _unauthorized(self, request: Request) -> Response:
        msg_id = await self._best_effort_id(request)
        return jsonrpc_error_response(msg_id, JsonRpcError.UNAUTHORIZED, ERROR_UNAUTHORIZED, HttpStatus.UNAUTHORIZED)

    async def _best_effort_id(self, request: Request) -> Any:
        """The ``id`` of a JSON body, or None when there is no usable one."""
        try:
            body = await read_body(request, self.max_body_bytes)
        except ClientDisconnect:
            return None
        if not body:
            return None
        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError:
            return None
        return payload.get(KEY_ID) if isinstance(payload, dict) else None
