from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Callable, DefaultDict, Protocol, Type, TypeVar

from pr_quantifier.integration.events import DomainEvent


logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)
Handler = Callable[[DomainEvent], None]


class EventBus(Protocol):
    """Publish/subscribe interface for quantification events."""

    def publish(self, event: DomainEvent) -> None:
        ...

    def subscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        ...


class InMemoryEventBus(EventBus):
    """Synchronous in-process pub/sub bus.

    Handlers run on the publishing thread. A failing handler is logged and
    never propagates back into the walker or the pull-request handler.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type[DomainEvent], list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            matching = [
                handler
                for event_type, handlers in self._handlers.items()
                if isinstance(event, event_type)
                for handler in handlers
            ]
        for handler in matching:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %s failed for %s", handler, type(event).__name__)

    def subscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)  # type: ignore[arg-type]
