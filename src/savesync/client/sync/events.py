"""Lifecycle events emitted by the sync engine.

This module provides:
- SyncEventType: The event vocabulary
- SyncEvent: One published event
- EventBus: Typed publish/subscribe with explicit delivery order

Delivery is synchronous, in subscription order, on the publisher's
event loop turn. A failing handler is logged and skipped; it never
reaches the publisher.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SyncEventType(str, Enum):
    """Events published by the engine."""

    SYNC_STARTED = "sync-started"
    SYNC_PROGRESS = "sync-progress"
    SYNC_COMPLETED = "sync-completed"
    SYNC_FAILED = "sync-failed"
    CONFLICT_DETECTED = "conflict-detected"
    AWAITING_RESOLUTION = "awaiting-resolution"
    DEVICE_REGISTERED = "device-registered"
    STATUS_CHANGED = "status-changed"


@dataclass(frozen=True)
class SyncEvent:
    """A published event.

    Attributes:
        type: What happened.
        payload: Event data (operation, percent, error, conflicts...).
        timestamp: When it was published.
    """

    type: SyncEventType
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[SyncEvent], None]


@dataclass(eq=False)
class _Subscription:
    handler: EventHandler
    types: frozenset[SyncEventType] | None  # None means every type


class EventBus:
    """Publish/subscribe channel between the engine and its observers."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize the bus.

        Args:
            clock: Source of event timestamps.
        """
        self._clock = clock or (lambda: datetime.now(UTC))
        self._subscriptions: list[_Subscription] = []

    def subscribe(
        self,
        handler: EventHandler,
        *types: SyncEventType,
    ) -> Callable[[], None]:
        """Register a handler.

        Args:
            handler: Called with each matching event.
            types: Event types to receive; none means all events.

        Returns:
            A callable that removes the subscription.
        """
        subscription = _Subscription(handler, frozenset(types) if types else None)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def publish(self, event_type: SyncEventType, **payload: Any) -> SyncEvent:
        """Deliver an event to every matching subscriber.

        Returns:
            The published event.
        """
        event = SyncEvent(type=event_type, payload=payload, timestamp=self._clock())
        for subscription in list(self._subscriptions):
            if subscription.types is not None and event_type not in subscription.types:
                continue
            try:
                subscription.handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {event_type.value}")
        return event

    def is_observed(self, event_type: SyncEventType) -> bool:
        """Whether a handler subscribed to this type by name.

        Catch-all subscriptions do not count.
        """
        return any(
            s.types is not None and event_type in s.types for s in self._subscriptions
        )

    def __len__(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)
