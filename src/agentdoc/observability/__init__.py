"""
Observability — Structured logging for agentdoc.

Provides:
- Logger namespace under `agentdoc`
- Unit id, unit name and pipeline stage attached to every record
- JSON and readable formatters
"""

from agentdoc.observability.logging import (
    UnitScope,
    current_scope,
    configure_logging,
    get_logger,
    LogContext,
    ScopeFilter,
    JSONFormatter,
    ReadableFormatter,
)

__all__ = [
    "UnitScope",
    "current_scope",
    "configure_logging",
    "get_logger",
    "LogContext",
    "ScopeFilter",
    "JSONFormatter",
    "ReadableFormatter",
]
