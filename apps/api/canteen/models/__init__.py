# Import SQLAlchemy models so they register on Base.metadata
from canteen.models.notification_preference import NotificationPreferenceRecord  # noqa: F401
from canteen.models.order import Order, OrderItem, OrderStatus, PaymentMode  # noqa: F401
from canteen.models.order_event import OrderEvent  # noqa: F401
from canteen.models.user import User  # noqa: F401
