#!/usr/bin/env python3
# src/pylon_mcp/transport/base.py
"""
Transport interface implemented by the stdio and HTTP bindings.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..protocol import MCPProtocolHandler


class Transport(ABC):
    """Moves protocol messages between clients and an ``MCPProtocolHandler``.

    Attaching happens in ``start``; from then on the handler pushes
    out-of-band notifications through ``send_message``.
    """

    def __init__(self, protocol_handler: MCPProtocolHandler) -> None:
        self.protocol = protocol_handler
        self.running = False

    @abstractmethod
    async def start(self) -> None:
        """Start accepting messages."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop accepting messages and release client connections."""

    @abstractmethod
    async def send_message(self, message: dict[str, Any], subscribers: set[str] | None = None) -> None:
        """Deliver a message to clients.

        Args:
            message: JSON-RPC message to send
            subscribers: Subscriber ids to target; None means every client
        """
