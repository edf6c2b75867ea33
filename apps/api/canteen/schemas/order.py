from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator

from canteen.models.order import OrderStatus, PaymentMode
from canteen.services.state_machine import customer_label

MAX_ITEM_QUANTITY = 50
MAX_NOTES_LENGTH = 500


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class OrderItemIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    quantity: int = Field(ge=1, le=MAX_ITEM_QUANTITY, validation_alias=AliasChoices("quantity", "qty"))
    # Optional; checked against the menu price when sent.
    unit_price: float | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("unit_price", "price")
    )

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()


class OrderCreateRequest(BaseModel):
    items: list[OrderItemIn]
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    custom_order_id: str | None = Field(default=None, max_length=64)


class StaffOrderCreateRequest(BaseModel):
    user_email: str = Field(min_length=3, max_length=320)
    items: list[OrderItemIn]
    payment_mode: PaymentMode = PaymentMode.CASH
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator("user_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class StatusChangeRequest(BaseModel):
    status: OrderStatus
    expected_version: int | None = Field(default=None, ge=1)


class OrderItemResponse(ResponseModel):
    name: str
    quantity: int
    unit_price: float

    @computed_field
    @property
    def line_amount(self) -> float:
        return self.unit_price * self.quantity


class OrderResponse(ResponseModel):
    id: str
    custom_order_id: str | None = None
    user_id: str
    customer_name: str | None = None
    customer_email: str | None = None
    items: list[OrderItemResponse] = Field(default_factory=list)
    amount: float
    status: OrderStatus
    notes: str | None = None
    placed_by_staff: bool = False
    payment_mode: PaymentMode | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def status_label(self) -> str:
        return customer_label(self.status)

    @property
    def display_name(self) -> str:
        return self.customer_name or self.customer_email or "Unknown customer"


class OrderListResponse(BaseModel):
    items: list[OrderResponse]


class OrderEventResponse(ResponseModel):
    id: str
    order_id: str
    status: OrderStatus
    message: str
    payload: dict
    created_at: datetime


class OrderEventsResponse(BaseModel):
    items: list[OrderEventResponse]


class PendingReceiptRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=64)
