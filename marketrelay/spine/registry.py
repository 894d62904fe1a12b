"""
Subscription Registry - event name to ordered subscriber lists.

Invariants:
- an event key exists only while it has at least one subscriber
- a subscription id is unique and lives in exactly one event list
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterator

from marketrelay.core.events import EventCallback


@dataclass(frozen=True)
class Subscription:
    """A registered callback for one event."""
    id: str
    event: str
    callback: EventCallback


@dataclass(frozen=True)
class Removal:
    """Outcome of removing a subscription."""
    subscription: Subscription
    event_emptied: bool
    registry_empty: bool

    @property
    def event(self) -> str:
        return self.subscription.event


class SubscriptionRegistry:
    """Bookkeeping for subscriptions. Performs no I/O."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def add(self, event: str, callback: EventCallback) -> tuple[Subscription, bool]:
        """
        Register a callback for an event.

        Returns the new subscription and whether the event key was created.
        """
        if not isinstance(event, str) or not event.strip():
            raise ValueError("event must be a non-empty string.")
        if not callable(callback):
            raise TypeError("callback must be callable.")

        created = event not in self._subscriptions
        if created:
            self._subscriptions[event] = []
        subscription = Subscription(id=str(uuid.uuid4()), event=event, callback=callback)
        self._subscriptions[event].append(subscription)
        return subscription, created

    def remove(self, subscription_id: str) -> Removal | None:
        """Remove a subscription by id. Unknown ids return None."""
        for event, subscribers in self._subscriptions.items():
            for index, subscription in enumerate(subscribers):
                if subscription.id != subscription_id:
                    continue
                del subscribers[index]
                emptied = not subscribers
                if emptied:
                    del self._subscriptions[event]
                return Removal(
                    subscription=subscription,
                    event_emptied=emptied,
                    registry_empty=not self._subscriptions,
                )
        return None

    def subscribers(self, event: str) -> list[Subscription]:
        return list(self._subscriptions.get(event, ()))

    def first(self, event: str) -> Subscription | None:
        subscribers = self._subscriptions.get(event)
        return subscribers[0] if subscribers else None

    def has_subscribers(self, event: str) -> bool:
        return event in self._subscriptions

    def events(self) -> list[str]:
        return list(self._subscriptions)

    @property
    def is_empty(self) -> bool:
        return not self._subscriptions

    def __len__(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    def __contains__(self, subscription_id: object) -> bool:
        return any(
            sub.id == subscription_id
            for subs in self._subscriptions.values()
            for sub in subs
        )

    def __iter__(self) -> Iterator[Subscription]:
        for subs in self._subscriptions.values():
            yield from subs
