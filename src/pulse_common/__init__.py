"""
Shared plumbing for Pulse.

Modules:
- config: environment-driven configuration (`AppConfig`)
- logging: structlog setup
"""

__all__ = [
    "config",
    "logging",
]
