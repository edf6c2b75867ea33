from fastapi import APIRouter, Depends

from canteen.auth.dependencies import AuthContext, require_staff
from canteen.observability import metrics_store
from canteen.schemas.metrics import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Observability metrics", response_model=MetricsResponse)
def metrics_endpoint(
    _auth: AuthContext = Depends(require_staff),
) -> MetricsResponse:
    """Counters and timings for the kitchen dashboard; staff only."""
    snapshot = metrics_store.snapshot()

    return MetricsResponse(
        counters=snapshot.counters or {},
        timings=snapshot.timings or {},
    )
