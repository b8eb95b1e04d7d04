#!/usr/bin/env python3
# src/pylon_mcp/config/smart_config.py
"""
Server configuration resolved from environment variables.
"""

import logging
import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from ..constants import (
    DEFAULT_AUTH_HEADER,
    DEFAULT_HOST,
    DEFAULT_KEEPALIVE_INTERVAL,
    DEFAULT_MCP_PATH,
    DEFAULT_PORT,
    ENV_MCP_AUTH_EXEMPT_PATHS,
    ENV_MCP_AUTH_HEADER,
    ENV_MCP_AUTH_TOKEN,
    ENV_MCP_HOST,
    ENV_MCP_KEEPALIVE_INTERVAL,
    ENV_MCP_LOG_LEVEL,
    ENV_MCP_MAX_MESSAGE_BYTES,
    ENV_MCP_PATH,
    ENV_MCP_PORT,
    ENV_MCP_SERVER_NAME,
    ENV_MCP_SERVER_VERSION,
    ENV_MCP_STDIO,
    ENV_MCP_TRANSPORT,
    ENV_PORT,
    ENV_USE_STDIO,
    MAX_MESSAGE_BYTES,
    SERVER_NAME,
    SERVER_VERSION,
)
from ..transport.auth import AuthConfig

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}

TransportName = Literal["stdio", "http"]


class ServerConfig(BaseModel):
    """Runtime settings for a pylon-mcp server."""

    transport: TransportName = "stdio"
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    path_prefix: str = DEFAULT_MCP_PATH
    auth_token: str | None = None
    auth_header: str = DEFAULT_AUTH_HEADER
    auth_exempt_paths: list[str] = Field(default_factory=list)
    log_level: str | None = None
    max_message_bytes: int = Field(default=MAX_MESSAGE_BYTES, gt=0)
    keepalive_interval: float = Field(default=DEFAULT_KEEPALIVE_INTERVAL, gt=0)
    server_name: str = SERVER_NAME
    server_version: str = SERVER_VERSION

    @field_validator("path_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        return "/" + value.strip("/")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str | None) -> str | None:
        if value is None:
            return None
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        """Build a config from environment variables; unset variables keep their defaults.

        Raises:
            pydantic.ValidationError: when a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        transport = detect_transport(env)
        if transport:
            values["transport"] = transport

        for env_name, field in (
            (ENV_MCP_HOST, "host"),
            (ENV_MCP_PATH, "path_prefix"),
            (ENV_MCP_AUTH_TOKEN, "auth_token"),
            (ENV_MCP_AUTH_HEADER, "auth_header"),
            (ENV_MCP_LOG_LEVEL, "log_level"),
            (ENV_MCP_MAX_MESSAGE_BYTES, "max_message_bytes"),
            (ENV_MCP_KEEPALIVE_INTERVAL, "keepalive_interval"),
            (ENV_MCP_SERVER_NAME, "server_name"),
            (ENV_MCP_SERVER_VERSION, "server_version"),
        ):
            if env.get(env_name):
                values[field] = env[env_name]

        port = env.get(ENV_MCP_PORT) or env.get(ENV_PORT)
        if port:
            values["port"] = port

        exempt = env.get(ENV_MCP_AUTH_EXEMPT_PATHS)
        if exempt:
            values["auth_exempt_paths"] = [path.strip() for path in exempt.split(",") if path.strip()]

        return cls.model_validate(values)

    def auth_config(self) -> AuthConfig:
        return AuthConfig(
            token=self.auth_token,
            header_name=self.auth_header,
            exempt_paths=tuple(self.auth_exempt_paths),
        )


def detect_transport(environ: Mapping[str, str]) -> TransportName | None:
    """Transport requested by the environment, if any.

    ``MCP_STDIO`` / ``USE_STDIO`` force stdio; otherwise ``MCP_TRANSPORT``
    names it.
    """
    if environ.get(ENV_MCP_STDIO, "").lower() in _TRUTHY or environ.get(ENV_USE_STDIO, "").lower() in _TRUTHY:
        logger.debug("stdio transport forced by environment")
        return "stdio"
    requested = environ.get(ENV_MCP_TRANSPORT, "").strip().lower()
    if requested in ("stdio", "http"):
        return requested  # type: ignore[return-value]
    if requested:
        logger.warning(f"Ignoring unknown {ENV_MCP_TRANSPORT}={requested}")
    return None
