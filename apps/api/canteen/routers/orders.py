from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from canteen.auth.dependencies import AuthContext, get_auth_context
from canteen.db.session import get_db
from canteen.schemas.order import (
    OrderCreateRequest,
    OrderEventResponse,
    OrderEventsResponse,
    OrderResponse,
)
from canteen.services.orders_service import create_order, get_order, list_order_events
from canteen.services.users_service import get_user

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


def _assert_can_read(auth: AuthContext, order: dict) -> None:
    if auth.is_staff or auth.is_admin:
        return
    if order["user_id"] != str(auth.user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied for this order",
        )


@router.post("", response_model=OrderResponse, summary="Place order", status_code=201)
def create_order_endpoint(
    payload: OrderCreateRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    user = get_user(db, auth.user_id)
    return OrderResponse.model_validate(create_order(db, user, payload))


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
def get_order_endpoint(
    order_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    order = get_order(db, order_id)
    _assert_can_read(auth, order)
    return OrderResponse.model_validate(order)


@router.get("/{order_id}/events", response_model=OrderEventsResponse, summary="Order timeline")
def list_order_events_endpoint(
    order_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderEventsResponse:
    _assert_can_read(auth, get_order(db, order_id))
    return OrderEventsResponse(
        items=[OrderEventResponse.model_validate(event) for event in list_order_events(db, order_id)]
    )
