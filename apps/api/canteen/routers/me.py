from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from canteen.auth.dependencies import AuthContext, get_auth_context
from canteen.db.session import get_db
from canteen.dependencies import get_customer_views
from canteen.schemas.board import CustomerOrdersResponse, NotificationResponse
from canteen.schemas.order import PendingReceiptRequest
from canteen.schemas.user import NotificationSettingsPayload, UserResponse
from canteen.services.customer_orders import CustomerViewRegistry
from canteen.services.notifications import (
    NotificationEmitter,
    NotificationPreferences,
    preferences_store,
)
from canteen.services.users_service import get_user

router = APIRouter(prefix="/api/v1/me", tags=["me"])


@router.get("", response_model=UserResponse, summary="Current user profile")
def me_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> UserResponse:
    return UserResponse.model_validate(get_user(db, auth.user_id))


@router.get("/orders", response_model=CustomerOrdersResponse, summary="My orders")
def my_orders_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    views: CustomerViewRegistry = Depends(get_customer_views),
) -> CustomerOrdersResponse:
    """Reload the caller's orders.

    Status changes since the caller's previous load come back as notifications
    shaped by their preferences. A receipt requested through
    `PUT /api/v1/me/pending-receipt` is returned once the order is visible.
    """
    snapshot = views.get(auth.email).load()
    emitter = NotificationEmitter(preferences_store.load(db, auth.user_id))

    notifications = []
    for change in snapshot.status_changes:
        notification = emitter.status_changed(
            change.order_id, change.current, display_id=change.custom_order_id
        )
        if notification is not None:
            notifications.append(NotificationResponse.model_validate(notification.to_payload()))

    return CustomerOrdersResponse(
        items=list(snapshot.orders),
        receipt=snapshot.receipt,
        notifications=notifications,
        error=snapshot.error,
    )


@router.put(
    "/pending-receipt",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Open a receipt on the next orders load",
)
def pending_receipt_endpoint(
    payload: PendingReceiptRequest,
    auth: AuthContext = Depends(get_auth_context),
    views: CustomerViewRegistry = Depends(get_customer_views),
) -> Response:
    views.get(auth.email).request_receipt(payload.order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/notification-settings",
    response_model=NotificationSettingsPayload,
    summary="Notification preferences",
)
def get_notification_settings_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> NotificationSettingsPayload:
    prefs = preferences_store.load(db, auth.user_id)
    return NotificationSettingsPayload(**prefs.model_dump())


@router.put(
    "/notification-settings",
    response_model=NotificationSettingsPayload,
    summary="Update notification preferences",
)
def put_notification_settings_endpoint(
    payload: NotificationSettingsPayload,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> NotificationSettingsPayload:
    saved = preferences_store.save(
        db, auth.user_id, NotificationPreferences(**payload.model_dump())
    )
    return NotificationSettingsPayload(**saved.model_dump())
