import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError

from canteen.config import allowed_origins, ensure_secure_runtime_settings, settings
from canteen.db.migration_check import prepare_schema
from canteen.db.session import engine
from canteen.dependencies import get_staff_board
from canteen.errors import OrderServiceError
from canteen.observability import configure_logging, log_event, metrics_store, set_request_id
from canteen.routers.health import router as health_router
from canteen.routers.me import router as me_router
from canteen.routers.metrics import router as metrics_router
from canteen.routers.orders import router as orders_router
from canteen.routers.staff import router as staff_router
from canteen.services.order_feed import order_feed


@asynccontextmanager
async def lifespan(_app: FastAPI):
    import canteen.models  # noqa: F401 (register all SQLAlchemy models)

    configure_logging()
    ensure_secure_runtime_settings()
    prepare_schema(engine)

    board = get_staff_board()
    board.attach(order_feed)
    try:
        yield
    finally:
        board.detach()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Office canteen ordering: customer checkout, staff order board and notifications",
    lifespan=lifespan,
)


def custom_openapi():
    """
    Adds HTTP Bearer auth to the OpenAPI schema so Swagger UI shows an
    'Authorize' button and sends the identity token on every request.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})
    security_schemes["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(
        f"http_request {request.method} {request.url.path} {response.status_code}",
        order_id=request.path_params.get("order_id"),
    )
    return response


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(_request: Request, err: OrderServiceError) -> JSONResponse:
    metrics_store.increment(f"order_service_errors_{err.code.lower()}_total")
    return JSONResponse(status_code=err.status_code, content={"detail": err.to_detail()})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(_request: Request, err: SQLAlchemyError) -> JSONResponse:
    metrics_store.increment("database_errors_total")
    log_event(f"database_error {type(err).__name__}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": {"code": "REMOTE_UNAVAILABLE", "message": "Order store is unavailable"}
        },
    )


app.include_router(health_router)
app.include_router(orders_router)
app.include_router(me_router)
app.include_router(staff_router)
app.include_router(metrics_router)
