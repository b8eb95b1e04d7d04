#!/usr/bin/env python3
# src/pylon_mcp/protocol/session_state.py
"""
Session state shared by every transport connection.

Holds the handshake flag and the subscription map behind one coarse lock.
The lock is re-entrant so registry updates in the protocol handler can
nest state reads; no critical section spans an ``await``.
"""

import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)


class SessionState:
    """Process-wide handshake flag plus ``uri -> subscriber ids`` map."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._initialized = False
        self._subscriptions: dict[str, set[str]] = {}
        self.client_info: dict[str, Any] = {}
        self.client_capabilities: dict[str, Any] = {}

    # ================================================================
    # Handshake
    # ================================================================

    @property
    def initialized(self) -> bool:
        with self.lock:
            return self._initialized

    def mark_initialized(self) -> bool:
        """Flip the flag; returns False when it was already set."""
        with self.lock:
            if self._initialized:
                return False
            self._initialized = True
            return True

    def record_client(self, client_info: dict[str, Any], client_capabilities: dict[str, Any]) -> None:
        with self.lock:
            self.client_info = client_info
            self.client_capabilities = client_capabilities

    # ================================================================
    # Subscriptions
    # ================================================================

    def subscribe(self, uri: str, subscriber_id: str) -> None:
        with self.lock:
            self._subscriptions.setdefault(uri, set()).add(subscriber_id)

    def unsubscribe(self, uri: str, subscriber_id: str) -> bool:
        """Remove one pair; returns False when it was not present."""
        with self.lock:
            subscribers = self._subscriptions.get(uri)
            if not subscribers or subscriber_id not in subscribers:
                return False
            subscribers.discard(subscriber_id)
            if not subscribers:
                del self._subscriptions[uri]
            return True

    def subscribers(self, uri: str) -> set[str]:
        """Snapshot of the subscribers for ``uri``."""
        with self.lock:
            return set(self._subscriptions.get(uri, ()))

    def is_subscribed(self, uri: str, subscriber_id: str) -> bool:
        with self.lock:
            return subscriber_id in self._subscriptions.get(uri, ())

    def drop_subscriber(self, subscriber_id: str) -> list[str]:
        """Remove every subscription held by one subscriber; returns the uris it left."""
        with self.lock:
            dropped = []
            for uri in list(self._subscriptions):
                subscribers = self._subscriptions[uri]
                if subscriber_id in subscribers:
                    subscribers.discard(subscriber_id)
                    dropped.append(uri)
                    if not subscribers:
                        del self._subscriptions[uri]
        if dropped:
            logger.debug(f"Dropped subscriber {subscriber_id} from {len(dropped)} resource(s)")
        return dropped

    def drop_uri(self, uri: str) -> None:
        with self.lock:
            self._subscriptions.pop(uri, None)

    def snapshot(self) -> dict[str, set[str]]:
        with self.lock:
            return {uri: set(subscribers) for uri, subscribers in self._subscriptions.items()}
