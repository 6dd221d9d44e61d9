from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api import deps
from app.core.circuit_breaker import CircuitBreaker, CircuitState
from app.core.db_utils import check_db_connection
from app.core.metrics import pipeline_metrics
from app.services.broadcast import BroadcastHub
from app.services.email import is_email_configured
from app.services.status_store import StatusStore

router = APIRouter()


@router.get("")
def health(
    store: StatusStore = Depends(deps.get_status_store),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
    hub: BroadcastHub = Depends(deps.get_hub),
):
    """Database, email transport, breaker and push hub, plus the last pipeline runs."""
    database_ok = check_db_connection(store.engine)
    breaker_status = breaker.status()

    if not database_ok:
        overall = "unhealthy"
    elif breaker.state != CircuitState.CLOSED or not is_email_configured():
        overall = "degraded"
    else:
        overall = "healthy"

    body = {
        "status": overall,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "ok" if database_ok else "unreachable",
            "email": "configured" if is_email_configured() else "not configured",
            "circuit_breaker": breaker_status,
            "sse": hub.stats(),
        },
        "runs": pipeline_metrics.get_all_metrics(),
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)
