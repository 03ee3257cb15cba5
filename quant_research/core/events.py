"""
Structured event sink injected into strategies, the aggregator, and the backtest engine.
Keeps business logic free of direct console I/O.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class EventSink(ABC):
    """Receives named events with keyword fields."""

    @abstractmethod
    def emit(self, name: str, level: str = "info", **fields: Any) -> None:
        pass


class LoggingEventSink(EventSink):
    """Writes events as `name key=value ...` lines through stdlib logging."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("quant_research.events")

    def emit(self, name: str, level: str = "info", **fields: Any) -> None:
        lvl = _LEVELS.get(level, logging.INFO)
        if not self.logger.isEnabledFor(lvl):
            return
        parts = " ".join(f"{k}={_fmt(v)}" for k, v in fields.items())
        self.logger.log(lvl, "%s %s", name, parts)


@dataclass
class RecordedEvent:
    name: str
    level: str
    fields: dict = field(default_factory=dict)


class RecordingEventSink(EventSink):
    """Keeps events in memory. Used by tests and notebooks."""

    def __init__(self) -> None:
        self.events: List[RecordedEvent] = []

    def emit(self, name: str, level: str = "info", **fields: Any) -> None:
        self.events.append(RecordedEvent(name=name, level=level, fields=dict(fields)))

    def named(self, name: str) -> List[RecordedEvent]:
        return [e for e in self.events if e.name == name]


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.4f}"
    return str(value)
