from canteen.schemas.board import (
    BoardCounts,
    CustomerOrdersResponse,
    NotificationResponse,
    OrderBoardResponse,
    StaffNotificationsResponse,
)
from canteen.schemas.order import (
    OrderCreateRequest,
    OrderEventResponse,
    OrderEventsResponse,
    OrderItemIn,
    OrderListResponse,
    OrderResponse,
    StaffOrderCreateRequest,
    StatusChangeRequest,
)

__all__ = [
    "OrderItemIn",
    "OrderCreateRequest",
    "StaffOrderCreateRequest",
    "StatusChangeRequest",
    "OrderResponse",
    "OrderListResponse",
    "OrderEventResponse",
    "OrderEventsResponse",
    "BoardCounts",
    "OrderBoardResponse",
    "NotificationResponse",
    "StaffNotificationsResponse",
    "CustomerOrdersResponse",
]
