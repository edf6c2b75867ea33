from canteen.models.order import OrderStatus
from canteen.services.notifications import (
    TONE_PATTERNS,
    VIBRATION_PATTERNS,
    AlertLog,
    NotificationEmitter,
    NotificationKind,
    NotificationPreferences,
    preferences_store,
    status_message,
)
from canteen.services.staff_board import NewOrderAlert
from canteen.services.users_service import Identity, upsert_identity


def test_new_order_notification_uses_display_id_and_patterns():
    emitter = NotificationEmitter(NotificationPreferences())

    notification = emitter.new_order("o1", "Alice", display_id="ORD000123")

    assert notification.kind == NotificationKind.NEW_ORDER
    assert notification.title == "New Order Received!"
    assert notification.body == "Order ORD000123 from Alice"
    assert notification.tone == TONE_PATTERNS[NotificationKind.NEW_ORDER]
    assert notification.vibration == (300, 100, 300, 100, 300)


def test_status_notifications_pick_kind_and_message():
    emitter = NotificationEmitter(NotificationPreferences())

    ready = emitter.status_changed("o1", OrderStatus.COMPLETED, display_id="ORD000001")
    back = emitter.status_changed("o1", OrderStatus.PENDING)

    assert ready.kind == NotificationKind.ORDER_READY
    assert ready.body == "Order ORD000001: Your order is ready for pickup!"
    assert back.kind == NotificationKind.STATUS_UPDATE
    assert back.body == "Order o1: Your order status has been updated to pending"
    assert status_message(OrderStatus.CANCELLED) == "Your order has been cancelled."


def test_disabled_preferences_suppress_notifications():
    emitter = NotificationEmitter(NotificationPreferences(enabled=False))

    assert emitter.new_order("o1", "Alice") is None
    assert emitter.status_changed("o1", OrderStatus.ACCEPTED) is None


def test_sound_and_vibration_toggle_independently():
    emitter = NotificationEmitter(NotificationPreferences(sound=False))

    notification = emitter.status_changed("o1", OrderStatus.ACCEPTED)

    assert notification.tone is None
    assert notification.vibration == VIBRATION_PATTERNS[NotificationKind.ORDER_ACCEPTED]
    payload = notification.to_payload()
    assert payload["tone"] is None
    assert payload["vibration"] == [200, 50, 200]


def test_payload_shapes_tone_steps():
    emitter = NotificationEmitter(NotificationPreferences(vibration=False))

    payload = emitter.status_changed("o1", OrderStatus.CANCELLED).to_payload()

    assert payload["kind"] == "order_cancelled"
    assert payload["tone"] == [
        {"frequency_hz": 400, "duration_s": 0.3},
        {"frequency_hz": 300, "duration_s": 0.3},
    ]
    assert payload["vibration"] is None


def test_alert_log_numbers_and_bounds_entries():
    log = AlertLog(max_size=2)
    for order_id in ("o1", "o2", "o3"):
        log.append(NewOrderAlert(order_id=order_id, customer_name="Alice"))

    assert log.last_seq == 3
    assert [entry.seq for entry in log.since(0)] == [2, 3]
    assert [entry.alert.order_id for entry in log.since(2)] == ["o3"]


def test_alert_log_render_respects_preferences():
    log = AlertLog()
    log.append(NewOrderAlert(order_id="o1", customer_name="Alice", custom_order_id="ORD000001"))

    rendered = log.render(NotificationEmitter(NotificationPreferences()))
    muted = log.render(NotificationEmitter(NotificationPreferences(enabled=False)))

    assert [(n.seq, n.body) for n in rendered] == [(1, "Order ORD000001 from Alice")]
    assert muted == []

    log.reset()
    assert log.last_seq == 0
    assert log.since(0) == []


def test_preferences_default_on_and_persist(db_session):
    user = upsert_identity(db_session, Identity(uid="uid-alice", email="alice@office.test"))

    assert preferences_store.load(db_session, user.id) == NotificationPreferences()

    preferences_store.save(
        db_session, user.id, NotificationPreferences(enabled=True, sound=False, vibration=True)
    )

    assert preferences_store.load(db_session, user.id).sound is False
