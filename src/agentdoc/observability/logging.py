"""
Logging — Records tagged with the compilation unit and pipeline stage.

Compiling one unit runs lower, validate, emit and render in turn. Every
record logged along the way carries the unit's id and name plus the
stage it came from, so output from a parallel batch can be sorted by
unit and a failure traced to the step that raised it.
"""

import logging
import json
import sys
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class UnitScope:
    """What the current context is compiling."""
    unit_id: str | None = None
    name: str | None = None
    stage: str | None = None


_scope: ContextVar[UnitScope] = ContextVar("unit_scope", default=UnitScope())


def current_scope() -> UnitScope:
    """Unit and stage bound in the current context."""
    return _scope.get()


class ScopeFilter(logging.Filter):
    """Copies the bound unit and stage onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        scope = _scope.get()
        record.unit_id = scope.unit_id
        record.unit_name = scope.name
        record.stage = scope.stage
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "unit_id": getattr(record, "unit_id", None),
            "unit_name": getattr(record, "unit_name", None),
            "stage": getattr(record, "stage", None),
        }

        # Counters passed as extra={"fields": {...}}
        log_data.update(getattr(record, "fields", None) or {})

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class ReadableFormatter(logging.Formatter):
    """
    Single-line records for a terminal.

        DEBUG   [deploy:emit] agentdoc.emitter: ...
    """

    def format(self, record: logging.LogRecord) -> str:
        where = getattr(record, "unit_name", None) or "-"
        stage = getattr(record, "stage", None)
        if stage:
            where = f"{where}:{stage}"

        base = f"{record.levelname:<7} [{where}] {record.name}: {record.getMessage()}"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
) -> None:
    """
    Configure agentdoc logging.

    Replaces any handler installed by an earlier call.

    Args:
        level: Logging level
        json_format: Use JSON format (for machine consumption)
        stream: Output stream (default: stderr)
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(ScopeFilter())
    handler.setFormatter(JSONFormatter() if json_format else ReadableFormatter())

    root_logger = logging.getLogger("agentdoc")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger for an agentdoc component."""
    return logging.getLogger(f"agentdoc.{name}")


class LogContext:
    """
    Context manager binding a unit or a stage to log records.

    Fields left out keep the value of the enclosing context, so a stage
    can be entered inside a unit without repeating it:

        with LogContext(context.unit_id, name=context.name):
            with LogContext(stage="emit"):
                logger.debug("Emitting...")  # unit id, name and stage
    """

    def __init__(
        self,
        unit_id: UUID | str | None = None,
        name: str | None = None,
        stage: str | None = None,
    ):
        self.unit_id = unit_id
        self.name = name
        self.stage = stage
        self._token = None

    def __enter__(self):
        outer = _scope.get()
        if self.unit_id is not None:
            # A new unit does not inherit the enclosing stage
            scope = UnitScope(str(self.unit_id), self.name, self.stage)
        else:
            scope = UnitScope(
                outer.unit_id,
                self.name if self.name is not None else outer.name,
                self.stage if self.stage is not None else outer.stage,
            )
        self._token = _scope.set(scope)
        return scope

    def __exit__(self, *args):
        if self._token is not None:
            _scope.reset(self._token)
            self._token = None
