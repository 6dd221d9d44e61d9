"""
Shared API dependencies.

Pipeline components are built once in the application lifespan and stored
on app.state; endpoints receive them through the getters below so tests can
swap them via app.state or dependency_overrides.
"""

import secrets
from typing import Optional

from fastapi import Header, HTTPException, Query, Request, status

from app.core.circuit_breaker import CircuitBreaker
from app.core.config import settings
from app.core.rate_limit import RateLimiter
from app.services.broadcast import BroadcastHub
from app.services.email_dispatcher import EmailDispatcher
from app.services.poller import Poller
from app.services.status_store import StatusStore

CRON_SECRET_HEADER = "X-Cron-Secret"
ADMIN_SECRET_HEADER = "X-Admin-Secret"


def _secret_matches(provided: Optional[str]) -> bool:
    # An unset secret locks the endpoints rather than opening them
    if not settings.CRON_SECRET or not provided:
        return False
    return secrets.compare_digest(provided.encode(), settings.CRON_SECRET.encode())


def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(default=None, alias=CRON_SECRET_HEADER),
    secret: Optional[str] = Query(default=None),
) -> None:
    """Cron triggers authenticate with the X-Cron-Secret header or ?secret=."""
    if not _secret_matches(x_cron_secret or secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def verify_admin_secret(
    x_admin_secret: Optional[str] = Header(default=None, alias=ADMIN_SECRET_HEADER),
) -> None:
    if not _secret_matches(x_admin_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_breaker(request: Request) -> CircuitBreaker:
    return request.app.state.breaker


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_status_store(request: Request) -> StatusStore:
    return request.app.state.status_store


def get_poller(request: Request) -> Poller:
    return request.app.state.poller


def get_dispatcher(request: Request) -> EmailDispatcher:
    return request.app.state.dispatcher
