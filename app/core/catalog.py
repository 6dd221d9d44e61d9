"""
Static catalog of tracked VPS models and datacenters.

A (model, datacenter) pair is the unit the poller tracks and subscribers
subscribe to. The catalog is fixed at startup.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class VPSModel:
    number: int
    name: str
    specs: str
    price: str


VPS_MODELS: Dict[int, VPSModel] = {
    1: VPSModel(1, "VPS-1", "4 vCores, 8GB RAM, 75GB SSD", "US$4.20"),
    2: VPSModel(2, "VPS-2", "6 vCores, 12GB RAM, 100GB SSD", "US$6.75"),
    3: VPSModel(3, "VPS-3", "8 vCores, 24GB RAM, 200GB SSD", "US$12.75"),
    4: VPSModel(4, "VPS-4", "12 vCores, 48GB RAM, 300GB SSD", "US$25.08"),
    5: VPSModel(5, "VPS-5", "16 vCores, 64GB RAM, 350GB SSD", "US$34.34"),
    6: VPSModel(6, "VPS-6", "24 vCores, 96GB RAM, 400GB SSD", "US$45.39"),
}

DATACENTER_NAMES: Dict[str, str] = {
    "GRA": "Gravelines, France",
    "SBG": "Strasbourg, France",
    "BHS": "Beauharnois, Canada",
    "WAW": "Warsaw, Poland",
    "UK": "London, UK",
    "DE": "Frankfurt, Germany",
    "FR": "Roubaix, France",
    "SGP": "Singapore",
    "SYD": "Sydney, Australia",
}

# OVH reports some datacenters by city code rather than the code we store
DATACENTER_ALIASES: Dict[str, str] = {
    "gra": "GRA",
    "sbg": "SBG",
    "bhs": "BHS",
    "waw": "WAW",
    "lon": "UK",
    "fra": "DE",
    "rbx": "FR",
    "sgp": "SGP",
    "syd": "SYD",
}

# Used when a response cannot be decoded; every entry is reported out of stock
DEFAULT_DATACENTERS: List[str] = ["SGP", "DE", "WAW", "BHS", "GRA", "SBG", "SYD", "UK"]


def get_vps_models() -> List[int]:
    return sorted(VPS_MODELS)


def get_datacenters() -> List[str]:
    return list(DATACENTER_NAMES)


def is_valid_model(model: int) -> bool:
    return model in VPS_MODELS


def normalize_datacenter(code: Optional[str]) -> Optional[str]:
    """
    Map an upstream datacenter code to a catalog code.

    Returns None for empty or unknown codes.
    """
    if not code or not isinstance(code, str):
        return None
    raw = code.strip()
    if raw.lower() in DATACENTER_ALIASES:
        return DATACENTER_ALIASES[raw.lower()]
    upper = raw.upper()
    return upper if upper in DATACENTER_NAMES else None


def datacenter_name(code: str) -> str:
    return DATACENTER_NAMES.get(code, code)
