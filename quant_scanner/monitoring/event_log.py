"""
Pipeline Event Log
==================
Structured log events forwarded to external notification collaborators.

Every stage reports through the standard ``logging`` module; stages that
also have something a collaborator should see (a rejected order, a failed
sentiment fetch, a nulled indicator) emit a ``PipelineEvent`` here.
"""

import pandas as pd
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Any
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class EventLevel(Enum):
    """Event severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(Enum):
    """Error taxonomy used in event context."""
    DATA_INSUFFICIENT = "data_insufficient"
    DATA_CORRUPTION = "data_corruption"
    EXTERNAL_FETCH_FAILURE = "external_fetch_failure"
    BUSINESS_RULE_REJECTION = "business_rule_rejection"
    FATAL_CALCULATION_ERROR = "fatal_calculation_error"


@dataclass
class PipelineEvent:
    """A single structured event."""
    level: EventLevel
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    source: str = ""
    timestamp: pd.Timestamp = field(default_factory=pd.Timestamp.now)

    def to_dict(self) -> dict:
        return {
            'level': self.level.value,
            'message': self.message,
            'context': self.context,
            'source': self.source,
            'timestamp': self.timestamp
        }


class EventLog:
    """Collects pipeline events and dispatches them to handlers."""

    def __init__(self, config=None, logger_: Optional[logging.Logger] = None):
        from ..config import MonitoringConfig
        self.config = config or MonitoringConfig()
        self.logger = logger_ or logger

        self.events: Deque[PipelineEvent] = deque(maxlen=self.config.max_events)
        self.handlers: List[Callable[[PipelineEvent], None]] = []

    def add_handler(self, handler: Callable[[PipelineEvent], None]):
        """Add custom event handler."""
        self.handlers.append(handler)

    def emit(self, level: EventLevel, message: str, source: str = "",
             category: Optional[ErrorCategory] = None, **context) -> PipelineEvent:
        """Create, log and dispatch an event."""
        if category is not None:
            context['category'] = category.value

        event = PipelineEvent(level=level, message=message, context=context, source=source)
        self.events.append(event)

        log_method = getattr(self.logger, level.value)
        prefix = f"[{source}] " if source else ""
        log_method(f"{prefix}{message}")

        # A broken handler must not take the pipeline down with it
        for handler in self.handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Event handler failed: {e}")

        return event

    def info(self, message: str, source: str = "", **context) -> PipelineEvent:
        return self.emit(EventLevel.INFO, message, source, **context)

    def warning(self, message: str, source: str = "", **context) -> PipelineEvent:
        return self.emit(EventLevel.WARNING, message, source, **context)

    def error(self, message: str, source: str = "", **context) -> PipelineEvent:
        return self.emit(EventLevel.ERROR, message, source, **context)

    def recent(self, count: int = 20, level: Optional[EventLevel] = None) -> List[PipelineEvent]:
        """Most recent events, optionally filtered by level."""
        events = [e for e in self.events if level is None or e.level == level]
        return events[-count:]

    def clear(self):
        self.events.clear()
