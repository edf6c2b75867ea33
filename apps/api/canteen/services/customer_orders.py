from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable

from canteen.errors import OrderServiceError
from canteen.models.order import OrderStatus
from canteen.observability import log_event, metrics_store
from canteen.schemas.order import OrderResponse
from canteen.services.staff_board import coerce_orders

PENDING_RECEIPT_FLAG = "pending_receipt_order_id"


class SessionStore:
    """Transient per-session flags; lost on restart."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._flags: dict[str, dict[str, str]] = defaultdict(dict)

    def get(self, session_key: str, flag: str) -> str | None:
        with self._lock:
            return self._flags.get(session_key, {}).get(flag)

    def set(self, session_key: str, flag: str, value: str) -> None:
        with self._lock:
            self._flags[session_key][flag] = value

    def clear(self, session_key: str, flag: str) -> None:
        with self._lock:
            self._flags.get(session_key, {}).pop(flag, None)

    def reset(self) -> None:
        with self._lock:
            self._flags.clear()


session_store = SessionStore()


class SessionFlags:
    def __init__(self, store: SessionStore, session_key: str) -> None:
        self._store = store
        self._session_key = session_key

    def get(self, flag: str) -> str | None:
        return self._store.get(self._session_key, flag)

    def set(self, flag: str, value: str) -> None:
        self._store.set(self._session_key, flag, value)

    def clear(self, flag: str) -> None:
        self._store.clear(self._session_key, flag)


@dataclass(frozen=True)
class StatusChange:
    order_id: str
    custom_order_id: str | None
    previous: OrderStatus
    current: OrderStatus


@dataclass(frozen=True)
class CustomerOrdersSnapshot:
    orders: tuple[OrderResponse, ...]
    receipt: OrderResponse | None = None
    status_changes: tuple[StatusChange, ...] = ()
    error: str | None = None


def _matches(order: OrderResponse, order_id: str) -> bool:
    return order.id == order_id or order.custom_order_id == order_id


class CustomerOrderView:
    def __init__(
        self,
        email: str,
        *,
        resolve_user_id: Callable[[str], uuid.UUID],
        fetch_user_orders: Callable[[uuid.UUID], list[dict[str, Any]]],
        session: SessionFlags,
    ) -> None:
        self.email = email
        self._resolve_user_id = resolve_user_id
        self._fetch_user_orders = fetch_user_orders
        self._session = session
        self._lock = Lock()
        self._orders: tuple[OrderResponse, ...] = ()
        self._loaded = False
        self._held_receipt_id: str | None = None

    @property
    def orders(self) -> tuple[OrderResponse, ...]:
        with self._lock:
            return self._orders

    def request_receipt(self, order_id: str) -> None:
        self._session.set(PENDING_RECEIPT_FLAG, order_id)

    def load(self) -> CustomerOrdersSnapshot:
        try:
            user_id = self._resolve_user_id(self.email)
            records = self._fetch_user_orders(user_id)
        except OrderServiceError as err:
            metrics_store.increment("customer_orders_load_failures_total")
            log_event(f"customer_orders_load_failed code={err.code}")
            return CustomerOrdersSnapshot(orders=self.orders, error=err.message)

        orders = sorted(coerce_orders(records), key=lambda order: order.created_at, reverse=True)
        with self._lock:
            changes = self._status_changes(self._orders, orders) if self._loaded else ()
            self._orders = tuple(orders)
            self._loaded = True
            receipt = self._take_receipt(self._orders)

        return CustomerOrdersSnapshot(
            orders=tuple(orders), receipt=receipt, status_changes=changes
        )

    @staticmethod
    def _status_changes(
        previous: tuple[OrderResponse, ...], current: list[OrderResponse]
    ) -> tuple[StatusChange, ...]:
        before = {order.id: order.status for order in previous}
        return tuple(
            StatusChange(
                order_id=order.id,
                custom_order_id=order.custom_order_id,
                previous=before[order.id],
                current=order.status,
            )
            for order in current
            if order.id in before and before[order.id] != order.status
        )

    def _take_receipt(self, orders: tuple[OrderResponse, ...]) -> OrderResponse | None:
        requested = self._session.get(PENDING_RECEIPT_FLAG) or self._held_receipt_id
        if requested is None:
            return None

        for order in orders:
            if _matches(order, requested):
                self._session.clear(PENDING_RECEIPT_FLAG)
                self._held_receipt_id = None
                log_event("receipt_deep_link_opened", order_id=order.id)
                return order

        # The order may not be visible yet; keep the request for the next load.
        self._held_receipt_id = requested
        return None


class CustomerViewRegistry:
    def __init__(self, factory: Callable[[str], CustomerOrderView]) -> None:
        self._factory = factory
        self._lock = Lock()
        self._views: dict[str, CustomerOrderView] = {}

    def get(self, email: str) -> CustomerOrderView:
        key = email.strip().lower()
        with self._lock:
            view = self._views.get(key)
            if view is None:
                view = self._factory(key)
                self._views[key] = view
            return view

    def reset(self) -> None:
        with self._lock:
            self._views.clear()
