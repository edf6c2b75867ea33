import random
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from canteen.config import menu_price, settings
from canteen.errors import ConflictError, NotFoundError, OrderValidationError
from canteen.models.order import Order, OrderItem, OrderStatus, PaymentMode
from canteen.models.order_event import OrderEvent
from canteen.models.user import User
from canteen.observability import log_event, metrics_store, observe_timing
from canteen.schemas.order import OrderCreateRequest, OrderItemIn, StaffOrderCreateRequest
from canteen.services.order_feed import ChangeKind, OrderFeed, order_feed
from canteen.services.state_machine import (
    INITIAL_STATUS,
    Actor,
    ensure_deletable,
    ensure_valid_transition,
)
from canteen.services.users_service import require_user_by_email


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def generate_custom_order_id() -> str:
    return f"{settings.custom_order_id_prefix}{random.randint(0, 999_999):06d}"


def resolve_order_uuid(order_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(order_id, uuid.UUID):
        return order_id
    try:
        return uuid.UUID(str(order_id))
    except ValueError as err:
        raise NotFoundError("Order") from err


def order_total(items: list[OrderItemIn]) -> float:
    return sum(item.unit_price * item.quantity for item in items)


def price_items(items: list[OrderItemIn]) -> list[OrderItemIn]:
    """Return the items priced from the menu, rejecting anything off-menu."""
    if not items:
        raise OrderValidationError("Order must contain at least one item")
    errors: list[str] = []
    priced: list[OrderItemIn] = []
    for index, item in enumerate(items, start=1):
        if not item.name:
            errors.append(f"Item {index}: missing name")
            continue
        price = menu_price(item.name)
        if price is None:
            errors.append(f'Item {index}: "{item.name}" not found in menu')
            continue
        if item.unit_price is not None and item.unit_price != price:
            errors.append(
                f"Item {index} ({item.name}): price {item.unit_price:g} "
                f"does not match menu price {price:g}"
            )
            continue
        priced.append(item.model_copy(update={"unit_price": price}))
    if errors:
        raise OrderValidationError("; ".join(errors))
    return priced


def _append_event(
    db: Session,
    order_id: uuid.UUID,
    state: OrderStatus,
    message: str,
    payload: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> None:
    db.add(
        OrderEvent(
            order_id=order_id,
            status=state,
            message=message,
            payload=payload or {},
            created_at=created_at or _now_utc(),
        )
    )


def _items_by_order(db: Session, order_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[OrderItem]]:
    grouped: dict[uuid.UUID, list[OrderItem]] = defaultdict(list)
    if not order_ids:
        return grouped
    rows = db.scalars(
        select(OrderItem)
        .where(OrderItem.order_id.in_(order_ids))
        .order_by(OrderItem.order_id, OrderItem.position)
    )
    for row in rows:
        grouped[row.order_id].append(row)
    return grouped


def _users_by_id(db: Session, user_ids: set[uuid.UUID]) -> dict[uuid.UUID, User]:
    if not user_ids:
        return {}
    return {user.id: user for user in db.scalars(select(User).where(User.id.in_(user_ids)))}


def _order_to_dict(row: Order, items: list[OrderItem], user: User | None) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "custom_order_id": row.custom_order_id,
        "user_id": str(row.user_id),
        "customer_name": user.name if user else None,
        "customer_email": user.email if user else None,
        "items": [
            {"name": item.item_name, "quantity": item.quantity, "unit_price": item.unit_price}
            for item in items
        ],
        "amount": row.amount,
        "status": row.status,
        "notes": row.notes,
        "placed_by_staff": row.placed_by_staff,
        "payment_mode": row.payment_mode,
        "version": row.version,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def _serialize(db: Session, rows: list[Order]) -> list[dict[str, Any]]:
    items = _items_by_order(db, [row.id for row in rows])
    users = _users_by_id(db, {row.user_id for row in rows})
    return [_order_to_dict(row, items.get(row.id, []), users.get(row.user_id)) for row in rows]


def _insert_order(
    db: Session,
    *,
    user: User,
    items: list[OrderItemIn],
    status_value: OrderStatus,
    notes: str | None,
    custom_order_id: str | None,
    placed_by_staff: bool = False,
    payment_mode: PaymentMode | None = None,
) -> Order:
    items = price_items(items)
    now = _now_utc()
    order = Order(
        custom_order_id=custom_order_id or generate_custom_order_id(),
        user_id=user.id,
        amount=order_total(items),
        status=status_value,
        notes=notes,
        placed_by_staff=placed_by_staff,
        payment_mode=payment_mode,
        version=1,
        created_at=now,
        updated_at=now,
    )
    db.add(order)
    db.flush()
    for position, item in enumerate(items):
        db.add(
            OrderItem(
                order_id=order.id,
                position=position,
                item_name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
        )
    return order


def create_order(
    db: Session,
    user: User,
    payload: OrderCreateRequest,
    *,
    feed: OrderFeed = order_feed,
) -> dict[str, Any]:
    order = _insert_order(
        db,
        user=user,
        items=payload.items,
        status_value=INITIAL_STATUS,
        notes=payload.notes,
        custom_order_id=payload.custom_order_id,
    )
    _append_event(db, order.id, INITIAL_STATUS, "Order placed", {"actor": Actor.CUSTOMER.value})
    db.commit()

    metrics_store.increment("orders_created_total")
    log_event("order_created", order_id=str(order.id), user_id=str(user.id))
    feed.publish(ChangeKind.INSERT, str(order.id))
    return get_order(db, order.id)


def create_staff_order(
    db: Session,
    payload: StaffOrderCreateRequest,
    *,
    feed: OrderFeed = order_feed,
) -> dict[str, Any]:
    """Record an order taken at the counter.

    Payment is settled in person, so the order skips `pending` and goes straight
    into preparation.
    """
    user = require_user_by_email(db, payload.user_email)
    order = _insert_order(
        db,
        user=user,
        items=payload.items,
        status_value=OrderStatus.ACCEPTED,
        notes=payload.notes,
        custom_order_id=None,
        placed_by_staff=True,
        payment_mode=payload.payment_mode,
    )
    _append_event(
        db,
        order.id,
        OrderStatus.ACCEPTED,
        "Order placed by staff",
        {"actor": Actor.STAFF.value, "payment_mode": payload.payment_mode.value},
    )
    db.commit()

    metrics_store.increment("orders_created_total")
    metrics_store.increment("staff_orders_created_total")
    log_event("staff_order_created", order_id=str(order.id), user_id=str(user.id))
    feed.publish(ChangeKind.INSERT, str(order.id))
    return get_order(db, order.id)


def _get_order_row(db: Session, order_id: str | uuid.UUID) -> Order:
    order = db.get(Order, resolve_order_uuid(order_id))
    if order is None:
        raise NotFoundError("Order")
    return order


def get_order(db: Session, order_id: str | uuid.UUID) -> dict[str, Any]:
    return _serialize(db, [_get_order_row(db, order_id)])[0]


def list_orders(db: Session, status_filter: OrderStatus | None = None) -> list[dict[str, Any]]:
    query = select(Order)
    if status_filter:
        query = query.where(Order.status == status_filter)
    rows = list(db.scalars(query.order_by(Order.created_at.desc())))
    return _serialize(db, rows)


def list_user_orders(db: Session, user_id: uuid.UUID) -> list[dict[str, Any]]:
    rows = list(
        db.scalars(
            select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())
        )
    )
    return _serialize(db, rows)


def list_order_events(db: Session, order_id: str | uuid.UUID) -> list[dict[str, Any]]:
    order = _get_order_row(db, order_id)
    events = db.scalars(
        select(OrderEvent)
        .where(OrderEvent.order_id == order.id)
        .order_by(OrderEvent.created_at.asc())
    )
    return [
        {
            "id": str(event.id),
            "order_id": str(event.order_id),
            "status": event.status,
            "message": event.message,
            "payload": event.payload,
            "created_at": event.created_at,
        }
        for event in events
    ]


def transition_order(
    db: Session,
    order_id: str | uuid.UUID,
    target: OrderStatus,
    actor: Actor,
    *,
    expected_version: int | None = None,
    message: str | None = None,
    feed: OrderFeed = order_feed,
) -> dict[str, Any]:
    order = _get_order_row(db, order_id)
    previous = order.status
    ensure_valid_transition(previous, target, actor)

    now = _now_utc()
    with observe_timing("order_transition_seconds"):
        stmt = update(Order).where(Order.id == order.id)
        if expected_version is not None:
            stmt = stmt.where(Order.version == expected_version)
        stmt = stmt.values(status=target, updated_at=now, version=Order.version + 1)
        result = db.execute(stmt, execution_options={"synchronize_session": False})
        if expected_version is not None and result.rowcount == 0:
            db.rollback()
            metrics_store.increment("order_transition_conflicts_total")
            raise ConflictError(
                f"Order version is no longer {expected_version}; reload and retry"
            )

        _append_event(
            db,
            order.id,
            target,
            message or f"Order {target.value}",
            {"from_status": previous.value, "to_status": target.value, "actor": actor.value},
            created_at=now,
        )
        db.commit()

    db.refresh(order)
    metrics_store.increment("order_transitions_total")
    log_event(
        f"order_transition {previous.value}->{target.value} actor={actor.value}",
        order_id=str(order.id),
    )
    feed.publish(ChangeKind.UPDATE, str(order.id))
    return get_order(db, order.id)


def delete_order(
    db: Session,
    order_id: str | uuid.UUID,
    *,
    feed: OrderFeed = order_feed,
) -> None:
    order = _get_order_row(db, order_id)
    ensure_deletable(order.status)
    order_uuid = order.id
    # SQLite does not enforce ON DELETE CASCADE without a pragma.
    db.execute(delete(OrderEvent).where(OrderEvent.order_id == order_uuid))
    db.execute(delete(OrderItem).where(OrderItem.order_id == order_uuid))
    db.delete(order)
    db.commit()

    metrics_store.increment("orders_deleted_total")
    log_event("order_deleted", order_id=str(order_uuid))
    feed.publish(ChangeKind.DELETE, str(order_uuid))
