"""
Read-only status endpoints over the stored (model, datacenter) readings.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from app.api import deps
from app.core.catalog import VPS_MODELS, datacenter_name, is_valid_model
from app.core.typing import isoformat_or_none
from app.models.status import DatacenterStatus, VPSStatus
from app.services.status_store import StatusStore

router = APIRouter()

CACHE_CONTROL = "s-maxage=30, stale-while-revalidate=60"


def serialize_status(record: DatacenterStatus) -> Dict[str, Any]:
    return {
        "model": record.model,
        "datacenter": record.datacenter,
        "datacenter_name": datacenter_name(record.datacenter),
        "status": record.status,
        "last_checked": isoformat_or_none(record.last_checked),
        "last_changed": isoformat_or_none(record.last_changed),
    }


def summarize(records: List[DatacenterStatus]) -> Dict[str, Any]:
    total = len(records)
    available = sum(1 for r in records if r.status == VPSStatus.AVAILABLE.value)
    return {
        "total": total,
        "available": available,
        "out_of_stock": total - available,
        "availability_percentage": round(available / total * 100) if total else 0,
    }


def group_by_model(records: List[DatacenterStatus]) -> Dict[int, List[Dict[str, Any]]]:
    grouped: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    for record in records:
        grouped[record.model].append(serialize_status(record))
    return dict(grouped)


@router.get("")
def get_all_status(
    response: Response,
    format: Literal["grouped", "flat"] = Query(default="grouped"),
    summary: bool = Query(default=False),
    store: StatusStore = Depends(deps.get_status_store),
):
    records = store.get_all()
    data: Dict[str, Any] = {
        "last_updated": datetime.now(timezone.utc).isoformat(),
        "count": len(records),
    }
    if format == "grouped":
        data["models"] = group_by_model(records)
    else:
        data["statuses"] = [serialize_status(r) for r in records]
    if summary:
        data["summary"] = summarize(records)

    response.headers["Cache-Control"] = CACHE_CONTROL
    return data


@router.get("/{model}")
def get_model_status(
    model: int,
    response: Response,
    store: StatusStore = Depends(deps.get_status_store),
):
    if not is_valid_model(model):
        raise HTTPException(status_code=400, detail=f"Invalid model {model}; expected one of {sorted(VPS_MODELS)}")

    records = store.get_all(model=model)
    vps = VPS_MODELS[model]
    response.headers["Cache-Control"] = CACHE_CONTROL
    return {
        "model": model,
        "name": vps.name,
        "specs": vps.specs,
        "price": vps.price,
        "datacenters": [serialize_status(r) for r in records],
        "summary": summarize(records),
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }
