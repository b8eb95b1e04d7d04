#!/usr/bin/env python3
# src/pylon_mcp/types/capabilities.py
"""
Capabilities - Server capability set advertised at initialize.
"""

import copy
from typing import Any

from ..constants import DEFAULT_CAPABILITIES


def create_server_capabilities(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return the default capability set with host-supplied overrides merged in.

    Nested dicts are merged key by key, so ``{"resources": {"subscribe": False}}``
    keeps ``resources.listChanged``.
    """
    capabilities = copy.deepcopy(DEFAULT_CAPABILITIES)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(capabilities.get(key), dict):
            capabilities[key] = {**capabilities[key], **value}
        else:
            capabilities[key] = value
    return capabilities


__all__ = ["create_server_capabilities"]
