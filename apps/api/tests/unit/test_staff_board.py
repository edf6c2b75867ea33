from datetime import datetime, timedelta, timezone

import pytest

from canteen.errors import InvalidTransitionError, NotFoundError, RemoteUnavailableError
from canteen.models.order import OrderStatus
from canteen.services.order_feed import ChangeKind, OrderFeed
from canteen.services.staff_board import (
    OrderBoard,
    StaffOrderAggregator,
    coerce_orders,
    new_order_alerts,
    partition_orders,
)
from canteen.services.state_machine import Actor, ensure_deletable, ensure_valid_transition

BASE_TIME = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _record(order_id: str, status_value: str, minutes: int = 0, **overrides) -> dict:
    created = BASE_TIME + timedelta(minutes=minutes)
    record = {
        "id": order_id,
        "custom_order_id": f"ORD{order_id}",
        "user_id": f"user-{order_id}",
        "customer_name": f"Customer {order_id}",
        "items": [{"name": "Tea", "quantity": 1, "unit_price": 10}],
        "amount": 10,
        "status": status_value,
        "version": 1,
        "created_at": created,
        "updated_at": created,
    }
    record.update(overrides)
    return record


class FakeOrderSource:
    def __init__(self, records=None) -> None:
        self.records = {record["id"]: record for record in records or []}
        self.fail_fetch = False
        self.deletes: list[str] = []
        self.ignore_deletes = 0

    def fetch_all(self):
        if self.fail_fetch:
            raise RemoteUnavailableError("Order store unavailable")
        return list(self.records.values())

    def transition(self, order_id, target, actor, expected_version=None):
        record = self.records.get(order_id)
        if record is None:
            raise NotFoundError("Order")
        ensure_valid_transition(OrderStatus(record["status"]), target, actor)
        record.update(status=target.value, version=record["version"] + 1)
        return dict(record)

    def delete(self, order_id):
        self.deletes.append(order_id)
        if order_id not in self.records:
            raise NotFoundError("Order")
        ensure_deletable(OrderStatus(self.records[order_id]["status"]))
        if self.ignore_deletes:
            # Simulates a delete that has not become visible to readers yet.
            self.ignore_deletes -= 1
            return
        del self.records[order_id]


class ManualScheduler:
    def __init__(self) -> None:
        self.calls: list[tuple[float, object]] = []

    def __call__(self, delay_s, callback) -> None:
        self.calls.append((delay_s, callback))

    def run_all(self) -> None:
        calls, self.calls = self.calls, []
        for _delay, callback in calls:
            callback()


@pytest.fixture
def scheduler():
    return ManualScheduler()


def _aggregator(source, scheduler, alerts=None):
    return StaffOrderAggregator(
        source,
        settle_delay_s=1.0,
        delete_verify_delay_s=3.0,
        schedule=scheduler,
        on_new_order=alerts.append if alerts is not None else None,
    )


def test_first_load_partitions_and_alerts_on_every_pending_order(scheduler):
    source = FakeOrderSource(
        [
            _record("o1", "pending"),
            _record("o2", "accepted"),
            _record("o3", "pending"),
        ]
    )
    alerts = []
    aggregator = _aggregator(source, scheduler, alerts)

    board = aggregator.load_all()

    assert {order.id for order in board.pending} == {"o1", "o3"}
    assert [order.id for order in board.accepted] == ["o2"]
    assert board.completed == () and board.cancelled == ()
    assert {alert.order_id for alert in alerts} == {"o1", "o3"}
    assert board.counts() == {
        "pending": 2,
        "accepted": 1,
        "completed": 0,
        "cancelled": 0,
        "active": 3,
    }


def test_only_newly_pending_orders_alert(scheduler):
    source = FakeOrderSource([_record("o1", "pending"), _record("o2", "accepted")])
    alerts = []
    aggregator = _aggregator(source, scheduler, alerts)
    aggregator.load_all()
    alerts.clear()

    source.records["o1"]["status"] = "accepted"
    source.records["o3"] = _record("o3", "pending", minutes=5)
    board = aggregator.load_all()

    assert [order.id for order in board.pending] == ["o3"]
    assert {order.id for order in board.accepted} == {"o1", "o2"}
    assert [alert.order_id for alert in alerts] == ["o3"]
    assert alerts[0].customer_name == "Customer o3"
    assert alerts[0].custom_order_id == "ORDo3"
    assert board.generation == 2


def test_order_returning_to_pending_alerts_again(scheduler):
    source = FakeOrderSource([_record("o1", "pending")])
    alerts = []
    aggregator = _aggregator(source, scheduler, alerts)
    aggregator.load_all()

    aggregator.accept("o1")
    aggregator.load_all()
    alerts.clear()
    aggregator.move_to("o1", OrderStatus.PENDING)
    aggregator.load_all()

    assert [alert.order_id for alert in alerts] == ["o1"]


def test_records_missing_identity_are_discarded(scheduler):
    source = FakeOrderSource(
        [
            _record("o1", "pending"),
            _record("o2", "accepted", user_id=None),
            _record("o3", "pending", status=""),
        ]
    )
    board = _aggregator(source, scheduler).load_all()

    assert [order.id for order in board.all_orders()] == ["o1"]


def test_coerce_orders_drops_unparseable_status():
    orders = coerce_orders([_record("o1", "pending"), _record("o2", "shipped")])

    assert [order.id for order in orders] == ["o1"]


def test_partition_keeps_all_buckets():
    buckets = partition_orders(coerce_orders([_record("o1", "cancelled")]))

    assert set(buckets) == set(OrderStatus)
    assert [order.id for order in buckets[OrderStatus.CANCELLED]] == ["o1"]


def test_new_order_alerts_against_empty_board():
    current = OrderBoard(pending=tuple(coerce_orders([_record("o1", "pending")])))

    assert [alert.order_id for alert in new_order_alerts(OrderBoard(), current)] == ["o1"]
    assert new_order_alerts(current, current) == []


def test_failed_reload_keeps_stale_board_and_sets_error(scheduler):
    source = FakeOrderSource([_record("o1", "pending")])
    aggregator = _aggregator(source, scheduler)
    first = aggregator.load_all()

    source.fail_fetch = True
    board = aggregator.load_all()

    assert board is first
    assert aggregator.error == "Order store unavailable"

    source.fail_fetch = False
    aggregator.load_all()
    assert aggregator.error is None


def test_change_notifications_reload_after_settle_delay(scheduler):
    source = FakeOrderSource()
    feed = OrderFeed()
    aggregator = _aggregator(source, scheduler)
    aggregator.attach(feed)

    source.records["o1"] = _record("o1", "pending")
    feed.publish(ChangeKind.INSERT, "o1")

    assert [delay for delay, _ in scheduler.calls] == [1.0]
    assert not aggregator.loaded

    scheduler.run_all()
    assert [order.id for order in aggregator.board.pending] == ["o1"]

    aggregator.detach()
    feed.publish(ChangeKind.UPDATE, "o1")
    assert scheduler.calls == []


def test_actions_report_failures_without_raising(scheduler):
    source = FakeOrderSource([_record("o1", "pending")])
    aggregator = _aggregator(source, scheduler)

    result = aggregator.complete("o1")

    assert not result.success
    assert result.code == InvalidTransitionError("pending", "completed").code
    assert result.status_code == 409
    assert result.error == "Invalid state transition: pending -> completed"

    missing = aggregator.cancel("nope")
    assert (missing.success, missing.status_code) == (False, 404)


def test_accept_complete_cancel_delegate_to_source(scheduler):
    source = FakeOrderSource([_record("o1", "pending"), _record("o2", "pending")])
    aggregator = _aggregator(source, scheduler)

    accepted = aggregator.accept("o1")
    completed = aggregator.complete("o1")
    cancelled = aggregator.cancel("o2", Actor.ADMIN)

    assert accepted.success and accepted.order.status == OrderStatus.ACCEPTED
    assert completed.order.status == OrderStatus.COMPLETED
    assert cancelled.order.status == OrderStatus.CANCELLED


def test_delete_verifies_and_retries_once(scheduler):
    source = FakeOrderSource([_record("o1", "cancelled")])
    source.ignore_deletes = 1
    aggregator = _aggregator(source, scheduler)
    aggregator.load_all()

    result = aggregator.delete("o1")

    assert result.success
    assert [delay for delay, _ in scheduler.calls] == [3.0]
    scheduler.run_all()
    assert source.deletes == ["o1", "o1"]
    assert "o1" not in source.records


def test_delete_without_lag_does_not_retry(scheduler):
    source = FakeOrderSource([_record("o1", "cancelled")])
    aggregator = _aggregator(source, scheduler)

    aggregator.delete("o1")
    scheduler.run_all()

    assert source.deletes == ["o1"]
    assert not aggregator.board.contains("o1")


def test_reset_clears_board_and_subscription(scheduler):
    source = FakeOrderSource([_record("o1", "pending")])
    feed = OrderFeed()
    aggregator = _aggregator(source, scheduler)
    aggregator.attach(feed)
    aggregator.load_all()

    aggregator.reset()
    feed.publish(ChangeKind.INSERT, "o2")

    assert not aggregator.loaded
    assert aggregator.board.generation == 0
    assert scheduler.calls == []


def test_delete_of_pending_order_fails_without_verification(scheduler):
    source = FakeOrderSource([_record("o1", "pending")])
    aggregator = _aggregator(source, scheduler)

    result = aggregator.delete("o1")

    assert not result.success
    assert (result.code, result.status_code) == ("INVALID_TRANSITION", 409)
    assert result.error == "Invalid state transition: pending -> deleted"
    assert scheduler.calls == []
    assert "o1" in source.records


def test_leaving_and_reentering_pending_between_reloads_does_not_realert(scheduler):
    source = FakeOrderSource([_record("o1", "pending")])
    alerts = []
    aggregator = _aggregator(source, scheduler, alerts)
    aggregator.load_all()
    alerts.clear()

    aggregator.accept("o1")
    aggregator.move_to("o1", OrderStatus.PENDING)
    board = aggregator.load_all()

    assert [order.id for order in board.pending] == ["o1"]
    assert alerts == []


def test_inserts_between_reloads_collapse_into_one_diff(scheduler):
    source = FakeOrderSource([_record("o1", "accepted")])
    feed = OrderFeed()
    alerts = []
    aggregator = _aggregator(source, scheduler, alerts)
    aggregator.attach(feed)
    aggregator.load_all()

    for index, order_id in enumerate(["o2", "o3", "o4"], start=1):
        source.records[order_id] = _record(order_id, "pending", minutes=index)
        feed.publish(ChangeKind.INSERT, order_id)
    scheduler.run_all()

    assert sorted(alert.order_id for alert in alerts) == ["o2", "o3", "o4"]
    assert {order.id for order in aggregator.board.pending} == {"o2", "o3", "o4"}


class InterleavedOrderSource(FakeOrderSource):
    """Runs `during_fetch` once, after the snapshot is taken but before it returns."""

    def __init__(self, records=None) -> None:
        super().__init__(records)
        self.during_fetch = None
        self.fail_after_hook = False

    def fetch_all(self):
        snapshot = [dict(record) for record in super().fetch_all()]
        hook, self.during_fetch = self.during_fetch, None
        if hook is not None:
            hook()
            if self.fail_after_hook:
                raise RemoteUnavailableError("Order store unavailable")
        return snapshot


def test_slow_reload_does_not_overwrite_newer_board(scheduler):
    source = InterleavedOrderSource([_record("o1", "pending")])
    alerts = []
    aggregator = _aggregator(source, scheduler, alerts)

    def newer_reload():
        source.records["o1"]["status"] = "accepted"
        source.records["o2"] = _record("o2", "pending", minutes=1)
        aggregator.load_all()

    source.during_fetch = newer_reload
    board = aggregator.load_all()

    assert [order.id for order in board.pending] == ["o2"]
    assert [order.id for order in aggregator.board.accepted] == ["o1"]
    assert [alert.order_id for alert in alerts] == ["o2"]
    assert aggregator.board.generation == 1

    aggregator.load_all()
    assert [alert.order_id for alert in alerts] == ["o2"]


def test_slow_failed_reload_does_not_flag_newer_board(scheduler):
    source = InterleavedOrderSource([_record("o1", "pending")])
    aggregator = _aggregator(source, scheduler)
    source.during_fetch = aggregator.load_all
    source.fail_after_hook = True

    aggregator.load_all()

    assert aggregator.error is None
    assert [order.id for order in aggregator.board.pending] == ["o1"]
