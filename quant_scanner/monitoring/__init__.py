"""
Monitoring Module
=================
"""
from .event_log import (
    EventLog,
    PipelineEvent,
    EventLevel,
    ErrorCategory
)

__all__ = [
    'EventLog',
    'PipelineEvent',
    'EventLevel',
    'ErrorCategory'
]
