import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from canteen.config import admin_email_set, staff_email_set
from canteen.errors import NotFoundError
from canteen.models.user import User
from canteen.observability import log_event, metrics_store


@dataclass(frozen=True)
class Identity:
    """Identity as supplied by the sign-in provider."""

    uid: str
    email: str
    display_name: str | None = None
    photo_url: str | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == normalize_email(email)))


def require_user_by_email(db: Session, email: str) -> User:
    user = get_user_by_email(db, email)
    if user is None:
        raise NotFoundError("User")
    return user


def get_user(db: Session, user_id: uuid.UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User")
    return user


def _apply_identity(user: User, identity: Identity) -> None:
    email = normalize_email(identity.email)
    user.auth_uid = identity.uid
    if identity.display_name:
        user.name = identity.display_name
    if identity.photo_url:
        user.photo_url = identity.photo_url
    # Capability flags are only ever granted here, never revoked.
    if email in staff_email_set():
        user.is_staff = True
    if email in admin_email_set():
        user.is_admin = True
        user.is_staff = True


def upsert_identity(db: Session, identity: Identity) -> User:
    user = get_user_by_email(db, identity.email)
    created = user is None
    if user is None:
        user = User(email=normalize_email(identity.email), is_staff=False, is_admin=False)
        db.add(user)
    _apply_identity(user, identity)
    if not created and not db.is_modified(user):
        return user

    try:
        db.commit()
    except IntegrityError:
        # Another request created the same email first.
        db.rollback()
        user = require_user_by_email(db, identity.email)
        _apply_identity(user, identity)
        db.commit()
        created = False

    db.refresh(user)
    if created:
        metrics_store.increment("users_created_total")
        log_event("user_created", user_id=str(user.id))
    return user
