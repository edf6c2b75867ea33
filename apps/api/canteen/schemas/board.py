from datetime import datetime

from pydantic import BaseModel

from canteen.schemas.order import OrderResponse


class BoardCounts(BaseModel):
    pending: int
    accepted: int
    completed: int
    cancelled: int
    active: int


class OrderBoardResponse(BaseModel):
    pending: list[OrderResponse]
    accepted: list[OrderResponse]
    completed: list[OrderResponse]
    cancelled: list[OrderResponse]
    counts: BoardCounts
    generation: int
    loaded_at: datetime | None
    error: str | None = None


class ToneStep(BaseModel):
    frequency_hz: int
    duration_s: float


class NotificationResponse(BaseModel):
    seq: int | None = None
    kind: str
    title: str
    body: str
    order_id: str
    tone: list[ToneStep] | None = None
    vibration: list[int] | None = None


class StaffNotificationsResponse(BaseModel):
    items: list[NotificationResponse]
    last_seq: int


class CustomerOrdersResponse(BaseModel):
    items: list[OrderResponse]
    receipt: OrderResponse | None = None
    notifications: list[NotificationResponse]
    error: str | None = None
