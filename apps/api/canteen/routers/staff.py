from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from canteen.auth.dependencies import AuthContext, require_staff
from canteen.db.session import get_db
from canteen.dependencies import get_alert_log, get_staff_board
from canteen.models.order import OrderStatus
from canteen.schemas.board import (
    BoardCounts,
    NotificationResponse,
    OrderBoardResponse,
    StaffNotificationsResponse,
)
from canteen.schemas.order import (
    OrderListResponse,
    OrderResponse,
    StaffOrderCreateRequest,
    StatusChangeRequest,
)
from canteen.services.notifications import AlertLog, NotificationEmitter, preferences_store
from canteen.services.orders_service import create_staff_order, list_orders
from canteen.services.staff_board import ActionResult, StaffOrderAggregator

router = APIRouter(prefix="/api/v1/staff", tags=["staff"])


def _board_response(aggregator: StaffOrderAggregator) -> OrderBoardResponse:
    board = aggregator.board
    return OrderBoardResponse(
        pending=list(board.pending),
        accepted=list(board.accepted),
        completed=list(board.completed),
        cancelled=list(board.cancelled),
        counts=BoardCounts(**board.counts()),
        generation=board.generation,
        loaded_at=board.loaded_at,
        error=aggregator.error,
    )


def _unwrap(result: ActionResult) -> ActionResult:
    if not result.success:
        raise HTTPException(
            status_code=result.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": result.code, "message": result.error},
        )
    return result


@router.get("/board", response_model=OrderBoardResponse, summary="Order board")
def board_endpoint(
    _auth: AuthContext = Depends(require_staff),
    aggregator: StaffOrderAggregator = Depends(get_staff_board),
) -> OrderBoardResponse:
    if not aggregator.loaded:
        aggregator.load_all()
    return _board_response(aggregator)


@router.post("/board/refresh", response_model=OrderBoardResponse, summary="Reload order board")
def refresh_board_endpoint(
    _auth: AuthContext = Depends(require_staff),
    aggregator: StaffOrderAggregator = Depends(get_staff_board),
) -> OrderBoardResponse:
    aggregator.load_all()
    return _board_response(aggregator)


@router.get(
    "/notifications",
    response_model=StaffNotificationsResponse,
    summary="New-order alerts since a sequence number",
)
def staff_notifications_endpoint(
    after: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_staff),
    alerts: AlertLog = Depends(get_alert_log),
) -> StaffNotificationsResponse:
    emitter = NotificationEmitter(preferences_store.load(db, auth.user_id))
    return StaffNotificationsResponse(
        items=[
            NotificationResponse.model_validate(notification.to_payload())
            for notification in alerts.render(emitter, after_seq=after)
        ],
        last_seq=alerts.last_seq,
    )


@router.get("/orders", response_model=OrderListResponse, summary="List all orders")
def list_orders_endpoint(
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_staff),
) -> OrderListResponse:
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in list_orders(db, status_filter)]
    )


@router.post(
    "/orders",
    response_model=OrderResponse,
    summary="Record a counter order",
    status_code=201,
)
def create_staff_order_endpoint(
    payload: StaffOrderCreateRequest,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_staff),
) -> OrderResponse:
    return OrderResponse.model_validate(create_staff_order(db, payload))


@router.post("/orders/{order_id}/status", response_model=OrderResponse, summary="Move order")
def change_status_endpoint(
    order_id: str,
    payload: StatusChangeRequest,
    auth: AuthContext = Depends(require_staff),
    aggregator: StaffOrderAggregator = Depends(get_staff_board),
) -> OrderResponse:
    result = _unwrap(
        aggregator.move_to(order_id, payload.status, auth.actor, payload.expected_version)
    )
    return result.order


@router.post("/orders/{order_id}/accept", response_model=OrderResponse, summary="Accept order")
def accept_endpoint(
    order_id: str,
    auth: AuthContext = Depends(require_staff),
    aggregator: StaffOrderAggregator = Depends(get_staff_board),
) -> OrderResponse:
    return _unwrap(aggregator.accept(order_id, auth.actor)).order


@router.post("/orders/{order_id}/complete", response_model=OrderResponse, summary="Complete order")
def complete_endpoint(
    order_id: str,
    auth: AuthContext = Depends(require_staff),
    aggregator: StaffOrderAggregator = Depends(get_staff_board),
) -> OrderResponse:
    return _unwrap(aggregator.complete(order_id, auth.actor)).order


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse, summary="Cancel order")
def cancel_endpoint(
    order_id: str,
    auth: AuthContext = Depends(require_staff),
    aggregator: StaffOrderAggregator = Depends(get_staff_board),
) -> OrderResponse:
    return _unwrap(aggregator.cancel(order_id, auth.actor)).order


@router.delete(
    "/orders/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete order",
)
def delete_endpoint(
    order_id: str,
    _auth: AuthContext = Depends(require_staff),
    aggregator: StaffOrderAggregator = Depends(get_staff_board),
) -> Response:
    _unwrap(aggregator.delete(order_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
