from collections.abc import Callable
from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from canteen.db.session import SessionLocal
from canteen.dependencies import get_staff_board
from canteen.observability import log_event, metrics_store
from canteen.schemas.health import HealthResponse, ReadinessDependency, ReadinessResponse
from canteen.services.staff_board import StaffOrderAggregator

ReadinessStatus = Literal["ok", "error"]

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(
    response: Response,
    board: StaffOrderAggregator = Depends(get_staff_board),
) -> ReadinessResponse:
    dependencies = [
        ReadinessDependency(
            name="database",
            status=_safe_dependency_status(
                "database", lambda: _database_dependency_status(SessionLocal)
            ),
        ),
        ReadinessDependency(
            name="order_board",
            status=_safe_dependency_status("order_board", lambda: _board_dependency_status(board)),
        ),
    ]

    readiness_status = "ok" if all(dep.status == "ok" for dep in dependencies) else "degraded"
    if readiness_status != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status=readiness_status, dependencies=dependencies)


def _safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    metrics_store.increment("readiness_dependency_checked_total")
    try:
        return checker()
    except Exception as exc:  # readiness must fail closed to degraded
        metrics_store.increment("readiness_dependency_error_total")
        log_event(f"readiness_dependency_check_failed {dependency_name}:{type(exc).__name__}")
        return "error"


def _database_dependency_status(
    session_factory: Callable[[], Session],
) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "error"
    return "ok"


def _board_dependency_status(board: StaffOrderAggregator) -> ReadinessStatus:
    # A board that has never loaded is fine; one stuck on a failed reload is not.
    return "error" if board.error is not None else "ok"
