"""
Exames Events Library.

In-process domain event delivery: the in-memory bus and the audit subscriber.
"""

from .bus import EventPublishError, FunctionEventHandler, HandlerFailure, InMemoryEventBus
from .handlers import AuditLogHandler

__all__ = [
    "AuditLogHandler",
    "EventPublishError",
    "FunctionEventHandler",
    "HandlerFailure",
    "InMemoryEventBus",
]
