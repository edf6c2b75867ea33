import uuid

from pydantic import BaseModel, ConfigDict


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str | None
    photo_url: str | None
    is_staff: bool
    is_admin: bool


class NotificationSettingsPayload(BaseModel):
    enabled: bool = True
    sound: bool = True
    vibration: bool = True
