"""Subscriptions on a channel and the demultiplexer that feeds them."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterator

# Message id of the subscribe action that created a subscription.
CreationID = int


@dataclass
class Subscription:
    """One logical topic (``app`` + ``path``) on a channel.

    ``creation_id`` is the correlation key: facts arrive tagged with the id
    of the subscribe action, not with the topic.
    """

    channel_uid: str
    creation_id: CreationID
    app: str
    path: str
    queue: deque = field(default_factory=deque)

    def matches(self, payload: Any) -> bool:
        if not isinstance(payload, dict):
            return False
        event_id = payload.get("id")
        return isinstance(event_id, int) and not isinstance(event_id, bool) and event_id == self.creation_id

    def push(self, fact: Any) -> int:
        self.queue.append(fact)
        return len(self.queue)

    def pop_message(self) -> Any | None:
        """Pop the oldest fact, or ``None`` when the queue is empty."""
        if not self.queue:
            return None
        return self.queue.popleft()

    def __len__(self) -> int:
        return len(self.queue)


class SubscriptionRegistry:
    """Live subscriptions of one channel, in creation order."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __iter__(self) -> Iterator[Subscription]:
        return iter(self._subscriptions)

    def add(self, subscription: Subscription) -> None:
        self._subscriptions.append(subscription)

    def get(self, creation_id: CreationID) -> Subscription | None:
        for sub in self._subscriptions:
            if sub.creation_id == creation_id:
                return sub
        return None

    def find(self, app: str, path: str) -> Subscription | None:
        """First subscription on ``app`` + ``path``."""
        for sub in self._subscriptions:
            if sub.app == app and sub.path == path:
                return sub
        return None

    def remove(self, creation_id: CreationID) -> Subscription | None:
        sub = self.get(creation_id)
        if sub is not None:
            self._subscriptions.remove(sub)
        return sub

    def route(self, payload: Any) -> Subscription | None:
        """Deliver a decoded event payload to the subscription that asked for it.

        Scanning stops at the first subscription whose ``creation_id``
        equals the payload's ``id``. Its inner ``json`` is queued when
        non-null. Returns the matching subscription, or ``None``.
        """
        for sub in self._subscriptions:
            if sub.matches(payload):
                fact = payload.get("json")
                if fact is not None:
                    sub.push(fact)
                return sub
        return None
