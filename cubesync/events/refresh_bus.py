"""
Process-wide refresh bus.

Delivery is synchronous and in-process. Handlers run in subscription order;
one failing handler is logged and does not stop delivery to the rest.
Events are not stored, so late subscribers see nothing from the past.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

import structlog


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RefreshEvent:
    """Notice that remote state likely changed."""
    reason: str
    address: Optional[str] = None
    published_at: datetime = field(default_factory=datetime.utcnow)


RefreshHandler = Callable[[RefreshEvent], None]


class Subscription:
    """Disposable handle returned by subscribe()."""

    def __init__(self, bus: "RefreshBus", subscription_id: int):
        self._bus = bus
        self.subscription_id = subscription_id
        self.active = True

    def __call__(self) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._bus._remove(self.subscription_id)


class RefreshBus:
    """In-process publish/subscribe channel."""

    def __init__(self):
        self._handlers: Dict[int, RefreshHandler] = {}
        self._ids = itertools.count(1)
        self.published_count = 0

    def subscribe(self, handler: RefreshHandler) -> Subscription:
        subscription_id = next(self._ids)
        self._handlers[subscription_id] = handler
        logger.debug("Refresh subscriber added", subscription_id=subscription_id)
        return Subscription(self, subscription_id)

    def _remove(self, subscription_id: int) -> None:
        self._handlers.pop(subscription_id, None)

    def publish(self, reason: str, address: Optional[str] = None) -> int:
        """Deliver an event to every current subscriber; return how many got it."""
        event = RefreshEvent(reason=reason, address=address.lower() if address else None)
        self.published_count += 1
        delivered = 0

        for subscription_id, handler in list(self._handlers.items()):
            # Skip handlers removed by an earlier handler in this delivery
            if subscription_id not in self._handlers:
                continue
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Refresh handler failed",
                    subscription_id=subscription_id,
                    reason=reason,
                    error=str(e)
                )

        logger.debug("Refresh published", reason=reason, delivered=delivered)
        return delivered

    def clear(self) -> None:
        self._handlers.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)


# Global bus instance
_refresh_bus: Optional[RefreshBus] = None


def get_refresh_bus() -> RefreshBus:
    """Get global refresh bus instance."""
    global _refresh_bus

    if _refresh_bus is None:
        _refresh_bus = RefreshBus()

    return _refresh_bus


def reset_refresh_bus() -> None:
    """Drop every subscriber and the global instance."""
    global _refresh_bus

    if _refresh_bus is not None:
        _refresh_bus.clear()
        _refresh_bus = None
