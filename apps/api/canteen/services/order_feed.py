"""In-process change feed for the orders table.

Writers publish one change per committed insert, update or delete; subscribers
get a bare notification and are expected to re-read the store.
"""

from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from canteen.observability import metrics_store


class ChangeKind(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class OrderChange:
    kind: ChangeKind
    order_id: str
    revision: int


ChangeCallback = Callable[[OrderChange], None]


class Subscription:
    def __init__(self, feed: "OrderFeed", token: int) -> None:
        self._feed = feed
        self._token = token

    def unsubscribe(self) -> None:
        self._feed._remove(self._token)


class OrderFeed:
    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: dict[int, ChangeCallback] = {}
        self._tokens = itertools.count(1)
        self._revision = 0

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = callback
        return Subscription(self, token)

    def _remove(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def publish(self, kind: ChangeKind, order_id: str) -> OrderChange:
        with self._lock:
            self._revision += 1
            change = OrderChange(kind=kind, order_id=order_id, revision=self._revision)
            callbacks = list(self._subscribers.values())

        metrics_store.increment("order_changes_published_total")
        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                # A broken subscriber must not fail the write that triggered it.
                metrics_store.increment("order_change_subscriber_errors_total")
                logging.getLogger("canteen.orders").exception(
                    "order_feed_subscriber_failed", extra={"order_id": order_id}
                )
        return change

    def reset(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._revision = 0


order_feed = OrderFeed()
