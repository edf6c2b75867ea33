import uuid
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from canteen.auth.jwt import IdentityTokenError, auth_http_exception, decode_identity_token
from canteen.config import settings
from canteen.db.session import get_db
from canteen.services.state_machine import Actor
from canteen.services.users_service import upsert_identity


@dataclass
class AuthContext:
    user_id: uuid.UUID
    email: str
    name: str | None = None
    is_staff: bool = False
    is_admin: bool = False

    @property
    def actor(self) -> Actor:
        if self.is_admin:
            return Actor.ADMIN
        if self.is_staff:
            return Actor.STAFF
        return Actor.CUSTOMER


def get_auth_context(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> AuthContext:
    if not authorization or not authorization.startswith("Bearer "):
        raise auth_http_exception("Missing bearer token")

    token = authorization.removeprefix("Bearer ").strip()
    try:
        identity = decode_identity_token(token, settings.jwt_secret)
    except IdentityTokenError as err:
        raise auth_http_exception("Invalid identity token") from err

    user = upsert_identity(db, identity)
    return AuthContext(
        user_id=user.id,
        email=user.email,
        name=user.name,
        is_staff=user.is_staff,
        is_admin=user.is_admin,
    )


def require_staff(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not (auth.is_staff or auth.is_admin):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return auth

