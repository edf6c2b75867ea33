from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from canteen.db.session import SessionLocal
from canteen.errors import RemoteUnavailableError
from canteen.models.order import OrderStatus
from canteen.services import orders_service
from canteen.services.order_feed import OrderFeed, order_feed
from canteen.services.state_machine import Actor
from canteen.services.users_service import require_user_by_email


class OrderSource(Protocol):
    def fetch_all(self) -> list[dict[str, Any]]: ...

    def transition(
        self,
        order_id: str,
        target: OrderStatus,
        actor: Actor,
        expected_version: int | None = None,
    ) -> dict[str, Any]: ...

    def delete(self, order_id: str) -> None: ...


class DbOrderSource:
    """OrderSource backed by the orders tables, one short session per call."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        feed: OrderFeed = order_feed,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as err:
            db.rollback()
            raise RemoteUnavailableError(f"Order store error: {type(err).__name__}") from err
        finally:
            db.close()

    def fetch_all(self) -> list[dict[str, Any]]:
        with self._session() as db:
            return orders_service.list_orders(db)

    def transition(
        self,
        order_id: str,
        target: OrderStatus,
        actor: Actor,
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        with self._session() as db:
            return orders_service.transition_order(
                db,
                order_id,
                target,
                actor,
                expected_version=expected_version,
                feed=self._feed,
            )

    def delete(self, order_id: str) -> None:
        with self._session() as db:
            orders_service.delete_order(db, order_id, feed=self._feed)

    def resolve_user_id(self, email: str) -> uuid.UUID:
        with self._session() as db:
            return require_user_by_email(db, email).id

    def fetch_user_orders(self, user_id: uuid.UUID) -> list[dict[str, Any]]:
        with self._session() as db:
            return orders_service.list_user_orders(db, user_id)
