import uuid

from sqlalchemy import Boolean, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from canteen.db.base import Base


class NotificationPreferenceRecord(Base):
    __tablename__ = "notification_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sound: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    vibration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
