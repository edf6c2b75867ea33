import threading

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import canteen.models  # noqa: F401
from canteen import dependencies
from canteen.auth.jwt import issue_identity_token
from canteen.config import settings
from canteen.db.base import Base
from canteen.db.session import engine as app_engine
from canteen.db.session import get_db
from canteen.dependencies import reset_runtime_state
from canteen.main import app
from canteen.observability import metrics_store
from canteen.services.order_feed import order_feed
from canteen.services.staff_board import StaffOrderAggregator
from canteen.services.users_service import Identity

STAFF_EMAIL = "kitchen@office.test"
ADMIN_EMAIL = "manager@office.test"
CUSTOMER_EMAIL = "alice@office.test"
OTHER_CUSTOMER_EMAIL = "bob@office.test"
TEST_MENU = {"Tea": 10.0, "Maggi": 20.0, "Coffee": 25.0, "Samosa": 15.0}


def run_immediately(_delay_s, callback):
    callback()


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = (
        settings.testing,
        settings.staff_emails,
        settings.admin_emails,
        settings.menu_prices,
    )
    settings.testing = True
    settings.staff_emails = STAFF_EMAIL
    settings.admin_emails = ADMIN_EMAIL
    settings.menu_prices = dict(TEST_MENU)
    yield
    (
        settings.testing,
        settings.staff_emails,
        settings.admin_emails,
        settings.menu_prices,
    ) = original


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture(autouse=True)
def staff_board(monkeypatch):
    """Process-wide board with reloads run inline instead of on timer threads."""
    reset_runtime_state()
    board = StaffOrderAggregator(
        dependencies.order_source,
        settle_delay_s=0,
        delete_verify_delay_s=0,
        schedule=run_immediately,
        on_new_order=dependencies.alert_log.append,
    )
    board.attach(order_feed)
    monkeypatch.setattr(dependencies, "staff_board", board)
    yield board
    board.detach()


@pytest.fixture
def db_session():
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(db_session):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db_session_lock = threading.Lock()

    def override_get_db():
        if db_session_lock.acquire(blocking=False):
            try:
                # Each request reads fresh rows, as a per-request session would.
                db_session.expire_all()
                yield db_session
            finally:
                db_session_lock.release()
            return

        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def bearer_headers(email: str, name: str | None = None) -> dict[str, str]:
    identity = Identity(uid=f"uid-{email}", email=email, display_name=name)
    token = issue_identity_token(identity, settings.jwt_secret)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return {
        "customer": bearer_headers(CUSTOMER_EMAIL, "Alice"),
        "other_customer": bearer_headers(OTHER_CUSTOMER_EMAIL, "Bob"),
        "staff": bearer_headers(STAFF_EMAIL, "Kitchen"),
        "admin": bearer_headers(ADMIN_EMAIL, "Manager"),
    }
