"""
Admin endpoints for the OVH circuit breaker.
Protected by the X-Admin-Secret header.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api import deps
from app.core.circuit_breaker import CircuitBreaker
from app.core.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(deps.verify_admin_secret)])

ACTIONS = ["reset", "test-failure", "test-success"]


class BreakerAction(BaseModel):
    action: Literal["reset", "test-failure", "test-success"]
    error: Optional[str] = None


@router.get("/circuit-breaker")
def get_circuit_breaker(breaker: CircuitBreaker = Depends(deps.get_breaker)):
    return {
        "circuit_breaker": breaker.status(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "actions_available": ACTIONS,
    }


@router.post("/circuit-breaker")
def control_circuit_breaker(body: BreakerAction, breaker: CircuitBreaker = Depends(deps.get_breaker)):
    """Mutate breaker state directly for recovery and testing."""
    if body.action == "reset":
        breaker.reset()
        message = "Circuit breaker reset to CLOSED state"
    elif body.action == "test-failure":
        breaker.record_failure(body.error or "Admin test failure")
        message = "Test failure recorded"
    else:
        breaker.record_success()
        message = "Test success recorded"

    logger.info("circuit_breaker_admin_action", action=body.action, state=breaker.state.value)
    return {
        "success": True,
        "message": message,
        "circuit_breaker": breaker.status(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
