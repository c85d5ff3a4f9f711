# controller/events.py
import logging
from typing import Any, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    def __init__(self, channel, callback):
        self._channel = channel
        self.callback = callback
        self.closed = False

    def close(self):
        if not self.closed:
            self.closed = True
            self._channel._remove(self)


class EventChannel(Generic[T]):
    """Publish/subscribe channel holding the latest value."""

    def __init__(self, name: str, initial: Optional[T] = None):
        self.name = name
        self._value = initial
        self._subscriptions: List[Subscription] = []

    @property
    def value(self) -> Optional[T]:
        return self._value

    def subscribe(self, callback: Callable[[Optional[T]], Any], replay=False) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        if replay:
            callback(self._value)
        return subscription

    def publish(self, value: Optional[T]):
        self._value = value
        for subscription in list(self._subscriptions):
            try:
                subscription.callback(value)
            except Exception:
                logger.exception(f"[EVENTS] Subscriber on '{self.name}' raised")

    def close(self):
        for subscription in list(self._subscriptions):
            subscription.close()

    def _remove(self, subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
