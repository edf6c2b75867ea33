"""Staff-side view of every order, partitioned by status.

The board is rebuilt from a full fetch on every change notification; there is
no incremental patching. New-order alerts come from diffing the pending bucket
of the previous board against the new one.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable

from pydantic import ValidationError

from canteen.errors import OrderServiceError
from canteen.models.order import OrderStatus
from canteen.observability import log_event, metrics_store, observe_timing
from canteen.schemas.order import OrderResponse
from canteen.services.order_feed import OrderChange, OrderFeed, Subscription
from canteen.services.order_source import OrderSource
from canteen.services.state_machine import Actor

Scheduler = Callable[[float, Callable[[], None]], None]

REQUIRED_FIELDS = ("id", "user_id", "status")


def thread_timer_scheduler(delay_s: float, callback: Callable[[], None]) -> None:
    timer = threading.Timer(delay_s, callback)
    timer.daemon = True
    timer.start()


@dataclass(frozen=True)
class NewOrderAlert:
    order_id: str
    customer_name: str
    custom_order_id: str | None = None


@dataclass(frozen=True)
class OrderBoard:
    pending: tuple[OrderResponse, ...] = ()
    accepted: tuple[OrderResponse, ...] = ()
    completed: tuple[OrderResponse, ...] = ()
    cancelled: tuple[OrderResponse, ...] = ()
    generation: int = 0
    loaded_at: datetime | None = None

    def bucket(self, status_value: OrderStatus) -> tuple[OrderResponse, ...]:
        return {
            OrderStatus.PENDING: self.pending,
            OrderStatus.ACCEPTED: self.accepted,
            OrderStatus.COMPLETED: self.completed,
            OrderStatus.CANCELLED: self.cancelled,
        }[status_value]

    def all_orders(self) -> tuple[OrderResponse, ...]:
        return self.pending + self.accepted + self.completed + self.cancelled

    def find(self, order_id: str) -> OrderResponse | None:
        for order in self.all_orders():
            if order.id == order_id:
                return order
        return None

    def contains(self, order_id: str) -> bool:
        return self.find(order_id) is not None

    @property
    def pending_ids(self) -> frozenset[str]:
        return frozenset(order.id for order in self.pending)

    def counts(self) -> dict[str, int]:
        return {
            "pending": len(self.pending),
            "accepted": len(self.accepted),
            "completed": len(self.completed),
            "cancelled": len(self.cancelled),
            "active": len(self.pending) + len(self.accepted),
        }


@dataclass(frozen=True)
class ActionResult:
    success: bool
    order: OrderResponse | None = None
    error: str | None = None
    code: str | None = None
    status_code: int | None = None

    @classmethod
    def failure(cls, err: OrderServiceError) -> "ActionResult":
        return cls(success=False, error=err.message, code=err.code, status_code=err.status_code)


def coerce_orders(records: Iterable[Mapping[str, Any] | OrderResponse]) -> list[OrderResponse]:
    """Validate raw records, dropping any that lack identifying fields."""
    orders: list[OrderResponse] = []
    for record in records:
        if isinstance(record, OrderResponse):
            orders.append(record)
            continue
        if any(not record.get(name) for name in REQUIRED_FIELDS):
            metrics_store.increment("staff_board_discarded_records_total")
            log_event("staff_board_record_discarded", order_id=str(record.get("id")))
            continue
        try:
            orders.append(OrderResponse.model_validate(record))
        except ValidationError:
            metrics_store.increment("staff_board_discarded_records_total")
            log_event("staff_board_record_discarded", order_id=str(record.get("id")))
    return orders


def partition_orders(orders: Iterable[OrderResponse]) -> dict[OrderStatus, list[OrderResponse]]:
    buckets: dict[OrderStatus, list[OrderResponse]] = {status_value: [] for status_value in OrderStatus}
    for order in orders:
        buckets[order.status].append(order)
    return buckets


def new_order_alerts(previous: OrderBoard, current: OrderBoard) -> list[NewOrderAlert]:
    seen = previous.pending_ids
    return [
        NewOrderAlert(
            order_id=order.id,
            customer_name=order.display_name,
            custom_order_id=order.custom_order_id,
        )
        for order in current.pending
        if order.id not in seen
    ]


@dataclass
class _BoardState:
    board: OrderBoard = field(default_factory=OrderBoard)
    error: str | None = None
    loaded: bool = False
    fetch_token: int = 0


class StaffOrderAggregator:
    def __init__(
        self,
        source: OrderSource,
        *,
        settle_delay_s: float = 1.0,
        delete_verify_delay_s: float = 3.0,
        schedule: Scheduler = thread_timer_scheduler,
        on_new_order: Callable[[NewOrderAlert], None] | None = None,
    ) -> None:
        self._source = source
        self._settle_delay_s = settle_delay_s
        self._delete_verify_delay_s = delete_verify_delay_s
        self._schedule = schedule
        self._on_new_order = on_new_order
        self._lock = Lock()
        self._state = _BoardState()
        self._subscription: Subscription | None = None
        self._fetch_seq = 0

    @property
    def board(self) -> OrderBoard:
        with self._lock:
            return self._state.board

    @property
    def error(self) -> str | None:
        with self._lock:
            return self._state.error

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._state.loaded

    def attach(self, feed: OrderFeed) -> None:
        self.detach()
        self._subscription = feed.subscribe(self.on_change)

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def reset(self) -> None:
        self.detach()
        with self._lock:
            self._state = _BoardState()

    def on_change(self, change: OrderChange) -> None:
        metrics_store.increment("staff_board_changes_seen_total")
        self._schedule(self._settle_delay_s, self.refresh)

    def load_all(self) -> OrderBoard:
        board, _ok = self._reload()
        return board

    def refresh(self) -> None:
        self._reload()

    def _reload(self) -> tuple[OrderBoard, bool]:
        with self._lock:
            self._fetch_seq += 1
            token = self._fetch_seq

        try:
            with observe_timing("staff_board_reload_seconds"):
                records = self._source.fetch_all()
        except OrderServiceError as err:
            metrics_store.increment("staff_board_reload_failures_total")
            log_event(f"staff_board_reload_failed code={err.code}", level=logging.WARNING)
            with self._lock:
                if token > self._state.fetch_token:
                    self._state.error = err.message
                return self._state.board, False

        buckets = partition_orders(coerce_orders(records))
        with self._lock:
            previous = self._state.board
            if token < self._state.fetch_token:
                # A reload that started later has already been applied.
                metrics_store.increment("staff_board_stale_reloads_total")
                return previous, True
            board = OrderBoard(
                pending=tuple(buckets[OrderStatus.PENDING]),
                accepted=tuple(buckets[OrderStatus.ACCEPTED]),
                completed=tuple(buckets[OrderStatus.COMPLETED]),
                cancelled=tuple(buckets[OrderStatus.CANCELLED]),
                generation=previous.generation + 1,
                loaded_at=datetime.now(timezone.utc),
            )
            self._state = _BoardState(board=board, error=None, loaded=True, fetch_token=token)
            alerts = new_order_alerts(previous, board)

        metrics_store.increment("staff_board_reloads_total")
        for alert in alerts:
            metrics_store.increment("new_order_alerts_total")
            log_event("new_order_alert", order_id=alert.order_id)
            if self._on_new_order is not None:
                self._on_new_order(alert)
        return board, True

    def move_to(
        self,
        order_id: str,
        target: OrderStatus,
        actor: Actor = Actor.STAFF,
        expected_version: int | None = None,
    ) -> ActionResult:
        try:
            record = self._source.transition(order_id, target, actor, expected_version)
        except OrderServiceError as err:
            log_event(f"staff_action_failed target={target.value} code={err.code}", order_id=order_id)
            return ActionResult.failure(err)
        return ActionResult(success=True, order=OrderResponse.model_validate(record))

    def accept(self, order_id: str, actor: Actor = Actor.STAFF) -> ActionResult:
        return self.move_to(order_id, OrderStatus.ACCEPTED, actor)

    def complete(self, order_id: str, actor: Actor = Actor.STAFF) -> ActionResult:
        return self.move_to(order_id, OrderStatus.COMPLETED, actor)

    def cancel(self, order_id: str, actor: Actor = Actor.STAFF) -> ActionResult:
        return self.move_to(order_id, OrderStatus.CANCELLED, actor)

    def delete(self, order_id: str) -> ActionResult:
        try:
            self._source.delete(order_id)
        except OrderServiceError as err:
            log_event(f"staff_delete_failed code={err.code}", order_id=order_id)
            return ActionResult.failure(err)

        self._schedule(self._delete_verify_delay_s, lambda: self._verify_deleted(order_id))
        return ActionResult(success=True)

    def _verify_deleted(self, order_id: str) -> None:
        # The change feed can lag behind the delete; retry once if still listed.
        board, ok = self._reload()
        if not ok or not board.contains(order_id):
            return

        metrics_store.increment("order_delete_retries_total")
        log_event("order_delete_retry", order_id=order_id)
        try:
            self._source.delete(order_id)
        except OrderServiceError as err:
            log_event(
                f"order_delete_retry_failed code={err.code}",
                order_id=order_id,
                level=logging.WARNING,
            )
