"""
Pipeline logger - Structured logging for batch signing runs

The sink is injected into every component instead of living in a global.
PipelineLogger writes through the standard logging module; MemoryEventSink
keeps everything in memory for tests.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple


class EventSink(Protocol):
    """Observability sink passed to each component."""

    def info(self, message: str, **data: Any) -> None: ...

    def warning(self, message: str, **data: Any) -> None: ...

    def error(self, message: str, **data: Any) -> None: ...

    def event(self, name: str, **data: Any) -> None: ...


def _format(message: str, data: Dict[str, Any]) -> str:
    if data:
        return f"{message} | {json.dumps(data, default=str, ensure_ascii=False)}"
    return message


class PipelineLogger:
    """Structured logger for batch pipeline operations."""

    def __init__(self, name: str = "ftcc", log_dir: Optional[Path] = None, stream=None):
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        # Clear existing handlers
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        # Console handler
        console_handler = logging.StreamHandler(stream or sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        self.logger.addHandler(console_handler)

        # File handler if log_dir provided
        self.log_file: Optional[Path] = None
        if log_dir:
            log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = log_dir / f"{name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
            file_handler = logging.FileHandler(self.log_file, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s'
            ))
            self.logger.addHandler(file_handler)

    def info(self, message: str, **data: Any) -> None:
        self.logger.info(_format(message, data))

    def warning(self, message: str, **data: Any) -> None:
        self.logger.warning(_format(message, data))

    def error(self, message: str, **data: Any) -> None:
        self.logger.error(_format(message, data))

    def debug(self, message: str, **data: Any) -> None:
        self.logger.debug(_format(message, data))

    def event(self, name: str, **data: Any) -> None:
        """Log a lifecycle milestone."""
        self.info(f"Event: {name}", event=name, timestamp=datetime.now().isoformat(), **data)

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()


class MemoryEventSink:
    """
    In-memory sink for tests.

    Records (level, message, data) tuples in emission order; safe to use
    from worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: List[Tuple[str, str, Dict[str, Any]]] = []

    def _record(self, level: str, message: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self.records.append((level, message, dict(data)))

    def info(self, message: str, **data: Any) -> None:
        self._record("info", message, data)

    def warning(self, message: str, **data: Any) -> None:
        self._record("warning", message, data)

    def error(self, message: str, **data: Any) -> None:
        self._record("error", message, data)

    def event(self, name: str, **data: Any) -> None:
        self._record("event", name, data)

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Data of recorded events, optionally filtered by name."""
        with self._lock:
            return [
                data for level, message, data in self.records
                if level == "event" and (name is None or message == name)
            ]

    def messages(self, level: Optional[str] = None) -> List[str]:
        with self._lock:
            return [m for lvl, m, _ in self.records if level is None or lvl == level]
