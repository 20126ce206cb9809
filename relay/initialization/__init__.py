"""
Relay Initialization Module.

This module contains startup and shutdown logic split into focused modules:
- logging: Logger configuration
- services: Engine components (registry, ledgers, worker)
- shutdown: Graceful shutdown handler
"""

__all__ = []
