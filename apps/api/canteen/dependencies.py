from canteen.config import settings
from canteen.services.customer_orders import (
    CustomerOrderView,
    CustomerViewRegistry,
    SessionFlags,
    session_store,
)
from canteen.services.notifications import AlertLog
from canteen.services.order_feed import order_feed
from canteen.services.order_source import DbOrderSource
from canteen.services.staff_board import StaffOrderAggregator

order_source = DbOrderSource()
alert_log = AlertLog(max_size=settings.alert_history_size)
staff_board = StaffOrderAggregator(
    order_source,
    settle_delay_s=settings.board_settle_delay_s,
    delete_verify_delay_s=settings.delete_verify_delay_s,
    on_new_order=alert_log.append,
)


def _build_customer_view(email: str) -> CustomerOrderView:
    return CustomerOrderView(
        email,
        resolve_user_id=order_source.resolve_user_id,
        fetch_user_orders=order_source.fetch_user_orders,
        session=SessionFlags(session_store, email),
    )


customer_views = CustomerViewRegistry(_build_customer_view)


def get_staff_board() -> StaffOrderAggregator:
    return staff_board


def get_alert_log() -> AlertLog:
    return alert_log


def get_customer_views() -> CustomerViewRegistry:
    return customer_views


def reset_runtime_state() -> None:
    order_feed.reset()
    staff_board.reset()
    alert_log.reset()
    session_store.reset()
    customer_views.reset()
