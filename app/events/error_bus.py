"""Diagnostic channel for faults the model reports instead of raising.

Analyzer failures under the LOG policy and listener failures never reach
the caller of ``end_update()``. They are published here, where tools and
tests can inspect them.
"""

from __future__ import annotations

import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, NamedTuple, Optional

from log_config.logger import get_logger

logger = get_logger(__name__)


class ErrorSeverity(Enum):
    """How bad a reported fault is, in increasing order."""

    INFO = "info"
    WARNING = "warning"  # Flush completed, something was skipped
    ERROR = "error"  # Some features may be stale
    CRITICAL = "critical"  # Model state may be inconsistent

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = list(ErrorSeverity)


class ErrorCategory(Enum):
    """Model subsystem a fault comes from."""

    MODEL = "model"
    GRAPH = "graph"
    FEATURES = "features"
    LISTENER = "listener"
    CONFIG = "config"


@dataclass
class ErrorEvent:
    """One reported fault.

    Attributes:
        category: Subsystem that reported it
        severity: Severity level
        message: Human-readable description
        source: Reporting component, usually a class name
        timestamp: Wall-clock time of the report
        exception: The exception caught, if any
        metadata: Extra context such as the analyzer key
    """

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    source: str
    timestamp: float = field(default_factory=time.time)
    exception: Optional[BaseException] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        text = f"[{self.severity.name}] {self.category.value}/{self.source}: {self.message}"
        if self.exception is not None:
            text += f" ({type(self.exception).__name__})"
        return text


ErrorCallback = Callable[[ErrorEvent], None]


class _Subscription(NamedTuple):
    callback: ErrorCallback
    category: Optional[ErrorCategory]
    min_severity: ErrorSeverity

    def wants(self, event: ErrorEvent) -> bool:
        if self.category is not None and self.category is not event.category:
            return False
        return event.severity.rank >= self.min_severity.rank


class ErrorEventBus:
    """Keeps a bounded history of faults and forwards them to subscribers.

    Delivery happens outside the lock, in subscription order. A subscriber
    that raises is logged and skipped.
    """

    def __init__(self, max_history: int = 100) -> None:
        self._lock = threading.Lock()
        self._subscriptions: List[_Subscription] = []
        self._history: Deque[ErrorEvent] = deque(maxlen=max_history)
        self._counts: Counter = Counter()

    def subscribe(
        self,
        callback: ErrorCallback,
        category: Optional[ErrorCategory] = None,
        min_severity: ErrorSeverity = ErrorSeverity.INFO,
    ) -> None:
        """Register callback for one category, or for all when category is None."""
        with self._lock:
            self._subscriptions.append(_Subscription(callback, category, min_severity))
        scope = category.value if category is not None else "all"
        logger.debug(f"Subscribed {getattr(callback, '__name__', repr(callback))} to {scope} faults")

    def unsubscribe(self, callback: ErrorCallback, category: Optional[ErrorCategory] = None) -> bool:
        """Drop the first matching subscription.

        Returns:
            False if callback was not subscribed with that category
        """
        with self._lock:
            for index, sub in enumerate(self._subscriptions):
                if sub.callback == callback and sub.category is category:
                    del self._subscriptions[index]
                    return True
        return False

    def publish(self, event: ErrorEvent) -> None:
        with self._lock:
            self._history.append(event)
            self._counts[event.category] += 1
            targets = [s.callback for s in self._subscriptions if s.wants(event)]

        logger.opt(exception=event.exception).log(event.severity.name, str(event))

        for callback in targets:
            try:
                callback(event)
            except Exception as e:
                logger.exception(
                    f"Fault subscriber {getattr(callback, '__name__', repr(callback))} raised: {e}"
                )

    def get_history(self, category: Optional[ErrorCategory] = None, limit: Optional[int] = None) -> List[ErrorEvent]:
        """Oldest-first copy of the retained faults."""
        with self._lock:
            events = [e for e in self._history if category is None or e.category is category]
        return events if limit is None else events[-limit:]

    def get_error_counts(self) -> Dict[ErrorCategory, int]:
        """Faults seen per category since the last clear, including evicted ones."""
        with self._lock:
            return dict(self._counts)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
            self._counts.clear()
        logger.debug("Fault history cleared")


_default_bus: Optional[ErrorEventBus] = None
_default_bus_lock = threading.Lock()


def get_error_bus() -> ErrorEventBus:
    """Process-wide bus used when a model has none of its own."""
    global _default_bus
    with _default_bus_lock:
        if _default_bus is None:
            _default_bus = ErrorEventBus()
    return _default_bus


def publish_error(
    category: ErrorCategory,
    severity: ErrorSeverity,
    message: str,
    source: str,
    exception: Optional[BaseException] = None,
    bus: Optional[ErrorEventBus] = None,
    **metadata: Any,
) -> None:
    """Build an ErrorEvent and publish it on bus, or on the process-wide bus."""
    event = ErrorEvent(
        category=category,
        severity=severity,
        message=message,
        source=source,
        exception=exception,
        metadata=metadata,
    )
    (bus if bus is not None else get_error_bus()).publish(event)


__all__ = [
    "ErrorCallback",
    "ErrorCategory",
    "ErrorEvent",
    "ErrorEventBus",
    "ErrorSeverity",
    "get_error_bus",
    "publish_error",
]
