"""Order notifications: tone, vibration and banner payloads.

Nothing is pushed from the server. Clients pull rendered notifications and
play them locally, so every notification is shaped by the preferences of the
user who reads it.
"""

from __future__ import annotations

import enum
import itertools
import uuid
from collections import deque
from dataclasses import dataclass
from threading import Lock

from pydantic import BaseModel
from sqlalchemy.orm import Session

from canteen.models.notification_preference import NotificationPreferenceRecord
from canteen.models.order import OrderStatus
from canteen.services.staff_board import NewOrderAlert


class NotificationKind(str, enum.Enum):
    NEW_ORDER = "new_order"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_READY = "order_ready"
    ORDER_CANCELLED = "order_cancelled"
    STATUS_UPDATE = "status_update"


# (frequency_hz, duration_s); frequency 0 is a rest.
TONE_PATTERNS: dict[NotificationKind, tuple[tuple[int, float], ...]] = {
    NotificationKind.NEW_ORDER: ((800, 0.1), (1000, 0.1)),
    NotificationKind.ORDER_ACCEPTED: ((600, 0.2), (800, 0.2)),
    NotificationKind.ORDER_READY: ((1000, 0.1), (0, 0.05), (1000, 0.1), (0, 0.05), (1000, 0.1)),
    NotificationKind.ORDER_CANCELLED: ((400, 0.3), (300, 0.3)),
    NotificationKind.STATUS_UPDATE: ((800, 0.2),),
}

# Alternating vibrate/pause durations in milliseconds.
VIBRATION_PATTERNS: dict[NotificationKind, tuple[int, ...]] = {
    NotificationKind.NEW_ORDER: (300, 100, 300, 100, 300),
    NotificationKind.ORDER_ACCEPTED: (200, 50, 200),
    NotificationKind.ORDER_READY: (100, 50, 100, 50, 100),
    NotificationKind.ORDER_CANCELLED: (500,),
    NotificationKind.STATUS_UPDATE: (200, 100, 200),
}

_STATUS_KINDS: dict[OrderStatus, NotificationKind] = {
    OrderStatus.ACCEPTED: NotificationKind.ORDER_ACCEPTED,
    OrderStatus.COMPLETED: NotificationKind.ORDER_READY,
    OrderStatus.CANCELLED: NotificationKind.ORDER_CANCELLED,
}

_STATUS_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: "Your order has been accepted and is being prepared!",
    OrderStatus.COMPLETED: "Your order is ready for pickup!",
    OrderStatus.CANCELLED: "Your order has been cancelled.",
}


def status_message(status_value: OrderStatus) -> str:
    return _STATUS_MESSAGES.get(
        status_value, f"Your order status has been updated to {status_value.value}"
    )


class NotificationPreferences(BaseModel):
    enabled: bool = True
    sound: bool = True
    vibration: bool = True


class NotificationPreferencesStore:
    def load(self, db: Session, user_id: uuid.UUID) -> NotificationPreferences:
        record = db.get(NotificationPreferenceRecord, user_id)
        if record is None:
            return NotificationPreferences()
        return NotificationPreferences(
            enabled=record.enabled, sound=record.sound, vibration=record.vibration
        )

    def save(
        self, db: Session, user_id: uuid.UUID, preferences: NotificationPreferences
    ) -> NotificationPreferences:
        record = db.get(NotificationPreferenceRecord, user_id)
        if record is None:
            record = NotificationPreferenceRecord(user_id=user_id)
            db.add(record)
        record.enabled = preferences.enabled
        record.sound = preferences.sound
        record.vibration = preferences.vibration
        db.commit()
        return preferences


preferences_store = NotificationPreferencesStore()


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    title: str
    body: str
    order_id: str
    tone: tuple[tuple[int, float], ...] | None
    vibration: tuple[int, ...] | None
    seq: int | None = None

    def to_payload(self) -> dict:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "title": self.title,
            "body": self.body,
            "order_id": self.order_id,
            "tone": (
                [{"frequency_hz": hz, "duration_s": seconds} for hz, seconds in self.tone]
                if self.tone is not None
                else None
            ),
            "vibration": list(self.vibration) if self.vibration is not None else None,
        }


class NotificationEmitter:
    def __init__(self, preferences: NotificationPreferences) -> None:
        self.preferences = preferences

    def _build(
        self,
        kind: NotificationKind,
        title: str,
        body: str,
        order_id: str,
        seq: int | None = None,
    ) -> Notification | None:
        prefs = self.preferences
        if not prefs.enabled:
            return None
        return Notification(
            kind=kind,
            title=title,
            body=body,
            order_id=order_id,
            tone=TONE_PATTERNS[kind] if prefs.sound else None,
            vibration=VIBRATION_PATTERNS[kind] if prefs.vibration else None,
            seq=seq,
        )

    def new_order(
        self,
        order_id: str,
        customer_name: str,
        *,
        display_id: str | None = None,
        seq: int | None = None,
    ) -> Notification | None:
        return self._build(
            NotificationKind.NEW_ORDER,
            "New Order Received!",
            f"Order {display_id or order_id} from {customer_name}",
            order_id,
            seq,
        )

    def status_changed(
        self,
        order_id: str,
        status_value: OrderStatus,
        message: str | None = None,
        *,
        display_id: str | None = None,
    ) -> Notification | None:
        kind = _STATUS_KINDS.get(status_value, NotificationKind.STATUS_UPDATE)
        return self._build(
            kind,
            "Order Status Update",
            f"Order {display_id or order_id}: {message or status_message(status_value)}",
            order_id,
        )


@dataclass(frozen=True)
class LoggedAlert:
    seq: int
    alert: NewOrderAlert


class AlertLog:
    """Bounded, sequence-numbered history of staff new-order alerts."""

    def __init__(self, max_size: int = 200) -> None:
        self._lock = Lock()
        self._entries: deque[LoggedAlert] = deque(maxlen=max_size)
        self._seq = itertools.count(1)
        self._last_seq = 0

    def append(self, alert: NewOrderAlert) -> LoggedAlert:
        with self._lock:
            entry = LoggedAlert(seq=next(self._seq), alert=alert)
            self._entries.append(entry)
            self._last_seq = entry.seq
        return entry

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._last_seq

    def since(self, after_seq: int = 0) -> list[LoggedAlert]:
        with self._lock:
            return [entry for entry in self._entries if entry.seq > after_seq]

    def render(self, emitter: NotificationEmitter, after_seq: int = 0) -> list[Notification]:
        notifications = []
        for entry in self.since(after_seq):
            notification = emitter.new_order(
                entry.alert.order_id,
                entry.alert.customer_name,
                display_id=entry.alert.custom_order_id,
                seq=entry.seq,
            )
            if notification is not None:
                notifications.append(notification)
        return notifications

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
            self._seq = itertools.count(1)
            self._last_seq = 0
