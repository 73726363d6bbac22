"""
Common utilities for the FSM engine.

Modules:
- errors: error taxonomy shared by stores and the engine
- logging: structlog configuration and logger factory
"""

__all__ = [
    "errors",
    "logging",
]
