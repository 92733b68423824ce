# Overview: In-process publish/subscribe for committed SystemEvents.

"""
WMS Event Bus
=============
Routes committed events to subscribed handlers.

Dispatch behavior:
1. Type-specific subscribers run first, then wildcard ("*") subscribers,
   each group in subscription order
2. Handlers run synchronously, after the triggering commit
3. A handler that raises is caught, logged and reported to the failure sink
4. Dispatch continues with the next handler

A handler failure must NOT:
- Break dispatch of sibling handlers
- Roll back or modify the triggering transition

The bus is an explicit object created by the application factory and handed
to every component that publishes or subscribes. It holds no storage; the
failure sink (event_service.record_delivery_failure) persists failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from wms.time_utils import to_utc_z

logger = logging.getLogger("wms.events")

WILDCARD = "*"


class EventBusError(Exception):
    pass


@dataclass(frozen=True)
class SystemEvent:
    """Immutable notice of a committed change."""
    type: str
    entity_type: str
    entity_id: int
    action: str
    payload: Mapping[str, Any]
    performed_by_id: Optional[int]
    timestamp: datetime
    # system_events row id; None for events that were never persisted
    id: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload or {})))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "payload": dict(self.payload),
            "performed_by_id": self.performed_by_id,
            "timestamp": to_utc_z(self.timestamp),
        }


@dataclass(frozen=True)
class Subscription:
    event_type: str
    handler: Callable[[SystemEvent], Any]
    name: str


@dataclass
class HandlerFailure:
    handler_name: str
    error: str
    error_type: str


@dataclass
class DispatchResult:
    event_type: str
    event_id: Optional[int]
    notified: int = 0
    failures: list[HandlerFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


FailureSink = Callable[[SystemEvent, str, BaseException], Any]


class EventBus:
    """
    Synchronous in-process event bus.

    Handler names are unique across the bus so a failed delivery can be
    re-driven to exactly the handler that failed.
    """

    def __init__(self, failure_sink: Optional[FailureSink] = None):
        self._subscribers: dict[str, list[Subscription]] = {}
        self._by_name: dict[str, Subscription] = {}
        self._lock = Lock()
        self._failure_sink = failure_sink

    def set_failure_sink(self, sink: Optional[FailureSink]) -> None:
        self._failure_sink = sink

    def subscribe(self, event_type: str, handler: Callable, *, name: Optional[str] = None) -> Subscription:
        if not event_type or not isinstance(event_type, str):
            raise EventBusError(f"Invalid event type: {event_type!r}")
        if not callable(handler):
            raise EventBusError(f"Handler must be callable, got {type(handler)}")

        handler_name = name or getattr(handler, "__qualname__", repr(handler))
        sub = Subscription(event_type=event_type, handler=handler, name=handler_name)

        with self._lock:
            if handler_name in self._by_name:
                raise EventBusError(f"Handler name already subscribed: {handler_name}")
            self._subscribers.setdefault(event_type, []).append(sub)
            self._by_name[handler_name] = sub

        logger.info("Subscriber registered: %s -> %s", handler_name, event_type)
        return sub

    def unsubscribe(self, subscription: Subscription | str) -> None:
        with self._lock:
            if isinstance(subscription, str):
                subscription = self._by_name.get(subscription)
                if subscription is None:
                    return
            subs = self._subscribers.get(subscription.event_type, [])
            if subscription in subs:
                subs.remove(subscription)
            self._by_name.pop(subscription.name, None)

    def subscribers_for(self, event_type: str) -> list[Subscription]:
        """Type-specific subscribers followed by wildcard subscribers."""
        with self._lock:
            specific = list(self._subscribers.get(event_type, []))
            wildcard = list(self._subscribers.get(WILDCARD, [])) if event_type != WILDCARD else []
        return specific + wildcard

    def handler_names(self) -> list[str]:
        with self._lock:
            return list(self._by_name)

    def publish(self, event: SystemEvent) -> DispatchResult:
        """
        Deliver an event to every matching subscriber.

        Never raises for handler failures; they are collected in the result.
        """
        result = DispatchResult(event_type=event.type, event_id=event.id)

        for sub in self.subscribers_for(event.type):
            try:
                sub.handler(event)
                result.notified += 1
            except Exception as exc:
                result.failures.append(
                    HandlerFailure(handler_name=sub.name, error=str(exc), error_type=type(exc).__name__)
                )
                logger.exception(
                    "Subscriber failed: %s for %s (event_id: %s)", sub.name, event.type, event.id
                )
                self._report_failure(event, sub.name, exc)

        logger.debug(
            "Dispatch complete: %s (event_id: %s) - %d notified, %d failed",
            event.type, event.id, result.notified, len(result.failures),
        )
        return result

    def deliver(self, event: SystemEvent, handler_name: str) -> None:
        """Invoke one named handler with the event. Exceptions propagate."""
        with self._lock:
            sub = self._by_name.get(handler_name)
        if sub is None:
            raise EventBusError(f"No subscriber named {handler_name}")
        if sub.event_type not in (event.type, WILDCARD):
            raise EventBusError(f"Subscriber {handler_name} does not handle {event.type}")
        sub.handler(event)

    def _report_failure(self, event: SystemEvent, handler_name: str, exc: BaseException) -> None:
        if self._failure_sink is None:
            return
        try:
            self._failure_sink(event, handler_name, exc)
        except Exception:
            logger.exception("Failure sink raised while recording %s for %s", handler_name, event.type)
