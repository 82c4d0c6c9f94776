"""Single-slot event channels for progress and metadata notifications."""

from __future__ import annotations

from typing import Callable, Generic, Optional, TypeVar

from common.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


class Subscription(Generic[T]):
    """Handle returned by :meth:`EventChannel.subscribe`."""

    def __init__(self, channel: EventChannel[T], observer: Callable[[T], None]):
        self._channel = channel
        self.observer = observer

    @property
    def active(self) -> bool:
        """False once unsubscribed or replaced by a newer subscriber."""
        return self._channel._subscription is self

    def unsubscribe(self) -> None:
        self._channel._release(self)


class EventChannel(Generic[T]):
    """Channel with at most one subscriber.

    Subscribing replaces the previous subscriber. Values are delivered
    synchronously and are not buffered: with no subscriber, a published
    value is dropped.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscription: Optional[Subscription[T]] = None

    @property
    def has_subscriber(self) -> bool:
        return self._subscription is not None

    def subscribe(self, observer: Callable[[T], None]) -> Subscription[T]:
        if self._subscription is not None:
            LOGGER.debug("Replacing channel subscriber", channel=self.name)
        self._subscription = Subscription(self, observer)
        return self._subscription

    def publish(self, value: T) -> bool:
        """Deliver ``value`` to the current subscriber.

        Returns:
            True if a subscriber received the value
        """
        subscription = self._subscription
        if subscription is None:
            return False
        try:
            subscription.observer(value)
        except Exception:
            # Delivery is best effort; an observer cannot fail the run
            LOGGER.warning("Channel observer raised", channel=self.name, exc_info=True)
        return True

    def _release(self, subscription: Subscription[T]) -> None:
        if self._subscription is subscription:
            self._subscription = None


__all__ = ["EventChannel", "Subscription"]
