"""
OVH availability poller.

One run fetches every catalog model concurrently (one upstream call per
model, several datacenters per response), writes each reading through the
StatusStore and fans the detected changes out to the NotificationQueue and
the BroadcastHub.

Per-model failures are contained: a timeout or non-2xx answer is recorded
against the circuit breaker and reported in the summary, and never aborts
the other models in the same run.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from app.core.catalog import get_vps_models
from app.core.circuit_breaker import CircuitBreaker
from app.core.errors import ParseAmbiguity, UpstreamUnavailable, capture_message
from app.core.logging_config import get_logger
from app.core.metrics import pipeline_metrics
from app.models.status import StatusChange
from app.services.broadcast import BroadcastHub
from app.services.notification_queue import NotificationQueue
from app.services.ovh_parser import ParseResult, parse_response
from app.services.status_store import StatusStore

logger = get_logger(__name__)

BREAKER_OPEN_REASON = "breaker open"

DEFAULT_HEADERS = {
    "User-Agent": "OVH-VPS-Monitor/1.0",
    "Accept": "application/json",
    "Cache-Control": "no-cache",
}


@dataclass
class ModelResult:
    model: int
    outcome: str  # "ok", "error" or "skipped"
    datacenters: int = 0
    changes: int = 0
    low_confidence: bool = False
    strategy: Optional[str] = None
    error: Optional[str] = None
    parse: Optional[ParseResult] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "model": self.model,
            "outcome": self.outcome,
            "datacenters": self.datacenters,
            "changes": self.changes,
        }
        if self.strategy:
            data["strategy"] = self.strategy
        if self.low_confidence:
            data["low_confidence"] = True
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class PollSummary:
    models_checked: int
    successful: int
    failed: int
    skipped: int
    changes_detected: int
    duration: float
    results: List[ModelResult]
    circuit_breaker: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "models_checked": self.models_checked,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "changes_detected": self.changes_detected,
            "duration": round(self.duration, 3),
            "results": [r.to_dict() for r in self.results],
            "circuit_breaker": self.circuit_breaker,
        }


class Poller:
    def __init__(
        self,
        breaker: CircuitBreaker,
        store: StatusStore,
        queue: NotificationQueue,
        hub: BroadcastHub,
        base_url: str,
        subsidiary: str = "ASIA",
        plan_code_template: str = "vps-2025-model{model}",
        timeout: float = 5.0,
        models: Optional[List[int]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.breaker = breaker
        self.store = store
        self.queue = queue
        self.hub = hub
        self.base_url = base_url
        self.subsidiary = subsidiary
        self.plan_code_template = plan_code_template
        self.timeout = timeout
        self.models = models if models is not None else get_vps_models()
        self.transport = transport

    def _params(self, model: int) -> Dict[str, str]:
        return {
            "ovhSubsidiary": self.subsidiary,
            "os": "",
            "planCode": self.plan_code_template.format(model=model),
        }

    async def _fetch(self, client: httpx.AsyncClient, model: int) -> ModelResult:
        if not self.breaker.can_call():
            logger.info("ovh_fetch_skipped", model=model, reason=BREAKER_OPEN_REASON)
            return ModelResult(model=model, outcome="skipped", error=BREAKER_OPEN_REASON)

        try:
            try:
                response = await client.get(self.base_url, params=self._params(model))
            except httpx.TimeoutException as e:
                raise UpstreamUnavailable(f"Timeout after {self.timeout}s") from e
            except httpx.HTTPError as e:
                raise UpstreamUnavailable(f"{type(e).__name__}: {e}") from e
            if not response.is_success:
                raise UpstreamUnavailable(f"HTTP {response.status_code}: {response.reason_phrase}")
        except UpstreamUnavailable as e:
            self.breaker.record_failure(str(e))
            logger.error("ovh_fetch_failed", model=model, error=str(e))
            return ModelResult(model=model, outcome="error", error=str(e))

        try:
            try:
                payload = response.json()
            except ValueError as e:
                raise ParseAmbiguity(f"Response body is not JSON: {e}") from e
        except ParseAmbiguity as e:
            logger.warning("ovh_response_unparseable", model=model, error=str(e))
            payload = None

        parsed = parse_response(payload, model)
        if parsed.trusted:
            self.breaker.record_success()
        else:
            capture_message(
                "OVH response decoded with low confidence, using fallback datacenters",
                level="warning",
                context={"model": model, "datacenters": len(parsed.readings), "strategy": parsed.strategy},
            )

        return ModelResult(
            model=model,
            outcome="ok",
            datacenters=len(parsed.readings),
            low_confidence=parsed.low_confidence,
            strategy=parsed.strategy,
            parse=parsed,
        )

    def _apply(self, result: ModelResult) -> List[Dict[str, Any]]:
        """Upsert every reading of one model; returns the change events."""
        events: List[Dict[str, Any]] = []
        if result.parse is None:
            return events

        for reading in result.parse.readings:
            upsert = self.store.upsert(result.model, reading.datacenter, reading.status)
            if not upsert.changed:
                continue

            change = StatusChange.for_status(reading.status)
            queued = self.queue.enqueue_for_change(result.model, reading.datacenter, change)
            logger.info(
                "status_changed",
                model=result.model,
                datacenter=reading.datacenter,
                old_status=upsert.old_status.value if upsert.old_status else None,
                new_status=reading.status.value,
                notifications_queued=queued,
            )
            events.append(
                {
                    "model": result.model,
                    "datacenter": reading.datacenter,
                    "old_status": upsert.old_status.value if upsert.old_status else None,
                    "status": reading.status.value,
                    "status_change": change.value,
                    "changed_at": datetime.now(timezone.utc).isoformat(),
                }
            )

        result.changes = len(events)
        return events

    async def run(self) -> PollSummary:
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=DEFAULT_HEADERS,
            transport=self.transport,
        ) as client:
            gathered = await asyncio.gather(
                *(self._fetch(client, model) for model in self.models),
                return_exceptions=True,
            )

        results: List[ModelResult] = []
        for model, outcome in zip(self.models, gathered):
            if isinstance(outcome, BaseException):
                # Unexpected fault inside one fetch; keep it scoped to its model
                logger.error("ovh_fetch_crashed", model=model, error=str(outcome), exc_info=outcome)
                results.append(ModelResult(model=model, outcome="error", error=str(outcome)))
            else:
                results.append(outcome)

        events: List[Dict[str, Any]] = []
        for result in results:
            if result.outcome == "ok":
                # Sessions are blocking; keep them off the event loop
                events.extend(await asyncio.to_thread(self._apply, result))

        if events:
            delivered = self.hub.publish(events)
            logger.info("status_changes_broadcast", changes=len(events), connections=delivered)

        successful = sum(1 for r in results if r.outcome == "ok")
        failed = sum(1 for r in results if r.outcome == "error")
        skipped = sum(1 for r in results if r.outcome == "skipped")

        summary = PollSummary(
            models_checked=len(self.models),
            successful=successful,
            failed=failed,
            skipped=skipped,
            changes_detected=len(events),
            duration=time.monotonic() - start,
            results=results,
            circuit_breaker=self.breaker.status(),
        )

        pipeline_metrics.record_run(
            "poll",
            started_at=started_at,
            processed=len(self.models),
            successful=successful,
            failed=failed,
            skipped=skipped,
            changes_detected=len(events),
        )
        logger.info(
            "poll_complete",
            models_checked=summary.models_checked,
            successful=successful,
            failed=failed,
            skipped=skipped,
            changes_detected=summary.changes_detected,
            duration=round(summary.duration, 3),
        )
        return summary
