#!/usr/bin/env python3
# src/pylon_mcp/config/__init__.py
"""
Configuration package.
"""

from .smart_config import ServerConfig, detect_transport

__all__ = ["ServerConfig", "detect_transport"]
