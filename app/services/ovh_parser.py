"""
OVH availability response decoding.

The datacenter rule endpoint has returned more than one shape over time, so
decoding is a list of named strategies tried in order. Each returns a list of
readings or None for "no match"; the first non-empty match wins. When nothing
matches, the default strategy marks the fallback datacenter list as
out-of-stock and flags the result as low-confidence.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from app.core.catalog import DEFAULT_DATACENTERS, normalize_datacenter
from app.core.logging_config import get_logger
from app.models.status import VPSStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class Reading:
    datacenter: str
    status: VPSStatus


@dataclass
class ParseResult:
    readings: List[Reading]
    strategy: str
    low_confidence: bool = False
    dropped: List[str] = field(default_factory=list)

    @property
    def trusted(self) -> bool:
        return bool(self.readings) and not self.low_confidence


def _to_status(value: Any) -> VPSStatus:
    return VPSStatus.AVAILABLE if value == "available" else VPSStatus.OUT_OF_STOCK


def _collect(pairs: List[Tuple[Any, VPSStatus]], dropped: List[str]) -> List[Reading]:
    """Normalize codes, drop unknown datacenters. Later duplicates win."""
    by_code = {}
    for raw_code, status in pairs:
        code = normalize_datacenter(raw_code) if isinstance(raw_code, str) else None
        if code is None:
            dropped.append(str(raw_code))
            continue
        by_code[code] = status
    return [Reading(datacenter=code, status=status) for code, status in by_code.items()]


def parse_datacenter_list(payload: Any, dropped: List[str]) -> Optional[List[Reading]]:
    """{"datacenters": [{"datacenter": "gra", "status"|"linuxStatus": "available"}, ...]}"""
    if not isinstance(payload, dict):
        return None
    entries = payload.get("datacenters")
    if not isinstance(entries, list):
        return None

    pairs = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("datacenter"):
            continue
        if entry.get("status") is not None:
            pairs.append((entry["datacenter"], _to_status(entry["status"])))
        elif entry.get("linuxStatus"):
            pairs.append((entry["datacenter"], _to_status(entry["linuxStatus"])))
    return _collect(pairs, dropped) or None


def parse_availability_lists(payload: Any, dropped: List[str]) -> Optional[List[Reading]]:
    """{"available_datacenters": [...], "unavailable_datacenters": [...]}"""
    if not isinstance(payload, dict):
        return None
    available = payload.get("available_datacenters")
    unavailable = payload.get("unavailable_datacenters")
    if not isinstance(available, list) and not isinstance(unavailable, list):
        return None

    pairs = [(code, VPSStatus.OUT_OF_STOCK) for code in (unavailable or [])]
    pairs += [(code, VPSStatus.AVAILABLE) for code in (available or [])]
    return _collect(pairs, dropped) or None


ParserStrategy = Callable[[Any, List[str]], Optional[List[Reading]]]

STRATEGIES: List[Tuple[str, ParserStrategy]] = [
    ("datacenters", parse_datacenter_list),
    ("availability_lists", parse_availability_lists),
]


def default_readings() -> List[Reading]:
    return [Reading(datacenter=code, status=VPSStatus.OUT_OF_STOCK) for code in DEFAULT_DATACENTERS]


def parse_response(payload: Any, model: int) -> ParseResult:
    """
    Decode an upstream payload for one model.

    payload is the decoded JSON body, or None when the body was not JSON.
    Never raises; an unrecognized shape yields the low-confidence fallback.
    """
    dropped: List[str] = []
    for name, strategy in STRATEGIES:
        readings = strategy(payload, dropped)
        if readings:
            if dropped:
                logger.warning("ovh_unknown_datacenters_dropped", model=model, codes=dropped)
            return ParseResult(readings=readings, strategy=name, dropped=dropped)

    logger.warning(
        "ovh_parse_fallback",
        model=model,
        payload_type=type(payload).__name__,
        dropped=dropped or None,
    )
    return ParseResult(readings=default_readings(), strategy="default", low_confidence=True, dropped=dropped)
