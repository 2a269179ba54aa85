"""Logging and metrics for interrogations.

Every interrogation records per-step timings and test-unit counts, and
the CLI can render log lines as JSON for log aggregation.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "InterrogationMetrics",
    "JSONFormatter",
    "MetricPoint",
    "StepTimer",
    "setup_logging",
]


@dataclass
class MetricPoint:
    """A single metric data point."""

    name: str
    value: Any
    timestamp: datetime
    unit: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "name": self.name,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.unit:
            result["unit"] = self.unit
        if self.tags:
            result["tags"] = self.tags
        return result


@dataclass
class StepTimer:
    """Wall-clock timer for one validation step."""

    step: int
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None

    def stop(self) -> float:
        """Stop the timer and return the duration (seconds)."""
        if self.end_time is None:
            self.end_time = time.perf_counter()
        return self.duration

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def running(self) -> bool:
        return self.end_time is None


class InterrogationMetrics:
    """Metrics for a single interrogation of an agent's steps.

    Safe to share between the worker threads of a parallel interrogation.
    """

    def __init__(self, agent_name: str, tbl_name: Optional[str] = None):
        self.agent_name = agent_name
        self.tbl_name = tbl_name

        self._start_time = time.perf_counter()
        self._end_time: Optional[float] = None
        self._timers: Dict[int, StepTimer] = {}
        self._metrics: List[MetricPoint] = []
        self._lock = threading.Lock()

    @contextmanager
    def time_step(self, step: int) -> Generator[StepTimer, None, None]:
        """Context manager that tracks one step's duration."""
        timer = StepTimer(step=step)
        with self._lock:
            self._timers[step] = timer
        try:
            yield timer
        finally:
            timer.stop()

    def record(self, name: str, value: Any, unit: Optional[str] = None, **tags: Any) -> None:
        all_tags = {"agent": self.agent_name}
        if self.tbl_name:
            all_tags["tbl_name"] = self.tbl_name
        all_tags.update({k: str(v) for k, v in tags.items()})

        point = MetricPoint(
            name=name,
            value=value,
            timestamp=datetime.now(timezone.utc),
            unit=unit,
            tags=all_tags,
        )
        with self._lock:
            self._metrics.append(point)

    def record_step(self, step: int, column: str, n: int, n_failed: int) -> None:
        """Record the test-unit counts of a finished step."""
        self.record("test_units", n, step=step, column=column)
        self.record("failed_units", n_failed, step=step, column=column)

    def finish(self) -> None:
        if self._end_time is None:
            self._end_time = time.perf_counter()

    @property
    def total_duration(self) -> float:
        end = self._end_time if self._end_time is not None else time.perf_counter()
        return end - self._start_time

    def step_duration(self, step: int) -> float:
        timer = self._timers.get(step)
        return timer.duration if timer else 0.0

    @property
    def metrics(self) -> List[MetricPoint]:
        return list(self._metrics)

    def summary(self) -> Dict[str, Any]:
        self.finish()
        return {
            "agent": self.agent_name,
            "tbl_name": self.tbl_name,
            "timing": {
                "total_seconds": round(self.total_duration, 3),
                "steps": {i: round(t.duration, 6) for i, t in sorted(self._timers.items())},
            },
            "metrics": [m.to_dict() for m in self._metrics],
        }


class JSONFormatter(logging.Formatter):
    """Formatter that renders log records as JSON."""

    _RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
        "message",
        "asctime",
    }

    def __init__(self, exclude_fields: Optional[List[str]] = None):
        super().__init__()
        self.exclude_fields = set(exclude_fields or [])

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            k: v
            for k, v in record.__dict__.items()
            if k not in self._RESERVED and k not in self.exclude_fields
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
) -> None:
    """Configure the root logger with optional JSON formatting.

    Args:
        verbose: Log at DEBUG (overrides ``level``)
        json_format: One JSON object per line
        log_file: Also write to this file
        level: Level name used when not verbose (default INFO)
    """
    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName((level or "INFO").upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # ibis and its backends are chatty at DEBUG
    logging.getLogger("ibis").setLevel(logging.WARNING)
