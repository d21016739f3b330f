"""
Diagnostic sinks consumed by the rules engine during evaluation.

A sink is anything with a ``debug(*values)`` method. The engine calls it for
every failing rule and once per node decision; the return value is ignored.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from shared.logging import get_logger


class DiagnosticSink(Protocol):
    def debug(self, *values: Any) -> None:
        ...


class NullSink:
    """Drops every diagnostic."""

    def debug(self, *values: Any) -> None:
        return None


NULL_SINK = NullSink()


def _split(values: tuple) -> tuple:
    """Split sink values into an event string and structured details."""
    if not values:
        return "", {}
    event, rest = values[0], values[1:]
    details: Dict[str, Any] = {}
    extra: List[Any] = []
    for value in rest:
        if isinstance(value, Mapping):
            details.update(value)
        else:
            extra.append(value)
    if extra:
        details["details"] = extra
    return str(event), details


class StructlogSink:
    """Forwards diagnostics to a structlog logger at debug level."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger("access_rules.diagnostics")

    def debug(self, *values: Any) -> None:
        event, details = _split(values)
        self.logger.debug(event, **details)


@dataclass
class DiagnosticRecord:
    """A single diagnostic emitted during evaluation."""
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class CollectingSink:
    """Keeps diagnostics in memory, optionally forwarding them to another sink."""

    def __init__(self, forward: Optional[DiagnosticSink] = None):
        self.records: List[DiagnosticRecord] = []
        self.forward = forward

    def debug(self, *values: Any) -> None:
        event, details = _split(values)
        self.records.append(DiagnosticRecord(event, details))
        if self.forward is not None:
            self.forward.debug(*values)

    def clear(self):
        self.records.clear()
