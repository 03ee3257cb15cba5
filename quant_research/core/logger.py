"""
Logging setup. Console plus optional file, with secrets masked and a separate level for event sinks.
"""

from __future__ import annotations
import logging
import re
import sys
from pathlib import Path
from typing import Optional

# Loggers that only carry LoggingEventSink output (strategy, aggregation and backtest events).
EVENT_LOGGERS = (
    "quant_research.strategies",
    "quant_research.signals",
    "quant_research.pipeline",
    "quant_research.backtest",
)

_SECRET_PATTERN = re.compile(r"(apiKey=)[^&\s'\"]+", re.IGNORECASE)


class RedactSecretsFilter(logging.Filter):
    """Masks `apiKey=...` query parameters (Polygon requests) in rendered messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = None,
    event_level: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the package logger: console and optional file.
    event_level overrides the level of the event loggers only (e.g. WARNING to hide per-symbol chatter).
    urllib3 is held at WARNING so request URLs carrying the API key are not logged.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger("quant_research")
    root.setLevel(log_level)
    root.handlers.clear()

    fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_fmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt, datefmt=date_fmt)
    redact = RedactSecretsFilter()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console.addFilter(redact)
    root.addHandler(console)

    if log_dir and log_file:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        fh.addFilter(redact)
        root.addHandler(fh)

    events = getattr(logging, event_level.upper(), None) if event_level else None
    for name in EVENT_LOGGERS:
        logging.getLogger(name).setLevel(events if events is not None else logging.NOTSET)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return root
