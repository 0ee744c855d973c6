"""Model change events and the error event bus."""

from app.events.error_bus import (
    ErrorCategory,
    ErrorEvent,
    ErrorEventBus,
    ErrorSeverity,
    get_error_bus,
    publish_error,
)
from app.events.event_types import (
    EdgeFlag,
    EventKind,
    ModelChangeEvent,
    ModelChangeEventBuilder,
    ModelChangeListener,
    SpotFlag,
    notify,
)

__all__ = [
    "EdgeFlag",
    "ErrorCategory",
    "ErrorEvent",
    "ErrorEventBus",
    "ErrorSeverity",
    "EventKind",
    "ModelChangeEvent",
    "ModelChangeEventBuilder",
    "ModelChangeListener",
    "SpotFlag",
    "get_error_bus",
    "notify",
    "publish_error",
]
