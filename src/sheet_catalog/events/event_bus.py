"""
Event Bus - Event-driven communication system.

This module provides a lightweight event bus for domain events, used to
notify listing surfaces of catalog mutations and session refinements.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
from uuid import uuid4

logger = logging.getLogger(__name__)


T = TypeVar('T', bound='DomainEvent')


@dataclass
class DomainEvent:
    """Base class for all domain events."""
    event_id: str = field(default_factory=lambda: f"evt_{uuid4().hex}")
    timestamp: datetime = field(default_factory=datetime.now)
    aggregate_id: Optional[str] = None
    aggregate_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.aggregate_type and self.aggregate_id:
            self.aggregate_type = self.__class__.__name__


class _StrongRef:
    """Callable wrapper with the same interface as weakref.ref."""

    def __init__(self, target: Callable):
        self._target = target

    def __call__(self) -> Callable:
        return self._target


class EventBus:
    """
    Central event bus for publishing and subscribing to domain events.

    Bound-method handlers are held weakly so a torn-down surface stops
    receiving events; plain functions are held until unsubscribed.
    """

    def __init__(self, max_events_in_memory: int = 1000):
        self._handlers: Dict[Type[DomainEvent], List[Any]] = {}
        self._event_store: List[DomainEvent] = []
        self._max_events_in_memory = max_events_in_memory

    def subscribe(self, event_type: Type[T], handler: Callable[[T], Any]) -> None:
        """
        Subscribe to events of a specific type (and its subclasses).

        Args:
            event_type: The event class to subscribe to
            handler: The handler function/method, sync or async
        """
        if hasattr(handler, '__self__'):
            ref = weakref.WeakMethod(handler)
        else:
            ref = _StrongRef(handler)

        self._handlers.setdefault(event_type, []).append(ref)

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Callable) -> None:
        """Unsubscribe a handler from an event type."""
        if event_type in self._handlers:
            self._handlers[event_type] = [
                ref for ref in self._handlers[event_type]
                if ref() is not None and ref() != handler
            ]

    async def publish(self, event: DomainEvent) -> None:
        """
        Publish an event to all subscribers.

        Handlers run in subscription order; a failing handler is logged and
        does not stop the others.
        """
        self._event_store.append(event)
        if len(self._event_store) > self._max_events_in_memory:
            self._event_store.pop(0)

        handlers = []
        for event_type in type(event).__mro__:
            if event_type in self._handlers:
                handlers.extend(ref() for ref in self._handlers[event_type] if ref() is not None)

        for handler in handlers:
            await self._safe_handle(handler, event)

    def get_events(
        self,
        aggregate_id: Optional[str] = None,
        event_type: Optional[Type[DomainEvent]] = None,
        since: Optional[datetime] = None,
    ) -> List[DomainEvent]:
        """Get events from the store with optional filtering."""
        filtered_events = self._event_store

        if aggregate_id:
            filtered_events = [e for e in filtered_events if e.aggregate_id == aggregate_id]

        if event_type:
            filtered_events = [e for e in filtered_events if isinstance(e, event_type)]

        if since:
            filtered_events = [e for e in filtered_events if e.timestamp >= since]

        return list(filtered_events)

    async def _safe_handle(self, handler: Callable, event: DomainEvent) -> None:
        try:
            result = handler(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Error in event handler %r for %s", handler, type(event).__name__)

    def clear(self) -> None:
        """Clear all handlers and events."""
        self._handlers.clear()
        self._event_store.clear()
