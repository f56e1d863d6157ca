from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional


_STORE_URL_ENV = "STORE_BASE_URL"
_STORE_URL_FALLBACK_ENV = "FIREBASE_DB_URL"
_READINGS_ROOT_ENV = "STORE_READINGS_ROOT"
_TRACKING_ROOT_ENV = "STORE_TRACKING_ROOT"
_GEOCODER_URL_ENV = "GEOCODER_URL"
_GEOCODER_AGENT_ENV = "GEOCODER_USER_AGENT"
_HTTP_TIMEOUT_ENV = "HTTP_TIMEOUT_SECONDS"
_RPC_URL_ENV = "RPC_URL"
_PRIVATE_KEY_ENV = "PRIVATE_KEY"
_CONTRACT_ADDRESS_ENV = "CONTRACT_ADDRESS"
_CONTRACT_ABI_ENV = "CONTRACT_ABI_PATH"
_STRATEGY_ENV = "ANCHOR_STRATEGY"
_COMPLETION_ENV = "ANCHOR_COMPLETION"
_CONFIRMATION_TIMEOUT_ENV = "CONFIRMATION_TIMEOUT_SECONDS"
_CONFIRMATION_WORKERS_ENV = "CONFIRMATION_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_ABI_PATH = Path(__file__).resolve().parent / "ledger" / "abi" / "transport_registry.json"


class AnchorStrategy(str, Enum):
    """Which contract method receives the arrival aggregate."""

    summary = "summary"
    digest = "digest"


class CompletionPolicy(str, Enum):
    """Whether the arrival request waits for on-chain confirmation."""

    sync = "sync"
    async_ = "async"


@dataclass(frozen=True)
class Settings:
    store_base_url: str
    readings_root: str
    tracking_root: str
    geocoder_url: str
    geocoder_user_agent: str
    http_timeout: float
    rpc_url: Optional[str]
    private_key: Optional[str]
    contract_address: Optional[str]
    contract_abi_path: str
    anchor_strategy: AnchorStrategy
    anchor_completion: CompletionPolicy
    confirmation_timeout: float
    confirmation_workers: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_choice(name: str, enum_type, default):
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    for member in enum_type:
        if member.value == candidate:
            return member
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _read_store_url(default: str) -> str:
    url = _read_optional_env(_STORE_URL_ENV) or _read_optional_env(_STORE_URL_FALLBACK_ENV)
    return (url or default).rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_base_url=_read_store_url("http://localhost:9000"),
        readings_root=_read_str_env(_READINGS_ROOT_ENV, "vehicle_data").strip("/"),
        tracking_root=_read_str_env(_TRACKING_ROOT_ENV, "tracking").strip("/"),
        geocoder_url=_read_str_env(
            _GEOCODER_URL_ENV, "https://nominatim.openstreetmap.org/reverse"
        ),
        geocoder_user_agent=_read_str_env(_GEOCODER_AGENT_ENV, "SriLankaFoodTrace/1.0"),
        http_timeout=_read_positive_float(_HTTP_TIMEOUT_ENV, 10.0),
        rpc_url=_read_optional_env(_RPC_URL_ENV),
        private_key=_read_optional_env(_PRIVATE_KEY_ENV),
        contract_address=_read_optional_env(_CONTRACT_ADDRESS_ENV),
        contract_abi_path=_read_str_env(_CONTRACT_ABI_ENV, str(DEFAULT_ABI_PATH)),
        anchor_strategy=_read_choice(_STRATEGY_ENV, AnchorStrategy, AnchorStrategy.summary),
        anchor_completion=_read_choice(
            _COMPLETION_ENV, CompletionPolicy, CompletionPolicy.sync
        ),
        confirmation_timeout=_read_positive_float(_CONFIRMATION_TIMEOUT_ENV, 120.0),
        confirmation_workers=_read_positive_int(_CONFIRMATION_WORKERS_ENV, 2),
        log_level=_read_log_level("INFO"),
    )
