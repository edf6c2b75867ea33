import enum

from canteen.errors import InvalidTransitionError
from canteen.models.order import OrderStatus


class Actor(str, enum.Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "awaiting confirmation",
    OrderStatus.ACCEPTED: "in preparation",
    OrderStatus.COMPLETED: "done",
    OrderStatus.CANCELLED: "cancelled",
}

STAFF_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.PENDING, OrderStatus.CANCELLED}
    ),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset({OrderStatus.ACCEPTED}),
}

# Admin override reopens completed orders.
ADMIN_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    **STAFF_TRANSITIONS,
    OrderStatus.COMPLETED: frozenset(
        {OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.CANCELLED}
    ),
}

# Customers only create orders; every status change is a staff action.
CUSTOMER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    status_value: frozenset() for status_value in OrderStatus
}

TRANSITIONS_BY_ACTOR: dict[Actor, dict[OrderStatus, frozenset[OrderStatus]]] = {
    Actor.CUSTOMER: CUSTOMER_TRANSITIONS,
    Actor.STAFF: STAFF_TRANSITIONS,
    Actor.ADMIN: ADMIN_TRANSITIONS,
}

INITIAL_STATUS = OrderStatus.PENDING


def allowed_targets(current: OrderStatus, actor: Actor) -> frozenset[OrderStatus]:
    return TRANSITIONS_BY_ACTOR[actor].get(current, frozenset())


def can_transition(current: OrderStatus, target: OrderStatus, actor: Actor) -> bool:
    return target in allowed_targets(current, actor)


def ensure_valid_transition(current: OrderStatus, target: OrderStatus, actor: Actor) -> None:
    if not can_transition(current, target, actor):
        raise InvalidTransitionError(current.value, target.value)


def customer_label(status_value: OrderStatus) -> str:
    return STATUS_LABELS[status_value]


# Hard delete is only offered for orders already cancelled.
DELETABLE_STATUSES = frozenset({OrderStatus.CANCELLED})


def ensure_deletable(current: OrderStatus) -> None:
    if current not in DELETABLE_STATUSES:
        raise InvalidTransitionError(current.value, "deleted")
