import os
from typing import Optional

from pydantic import BaseModel


class AppConfig(BaseModel):
    api_base_url: str = "http://localhost:8189"
    push_url: str = "ws://localhost:8189/ws"
    request_timeout: float = 15.0
    reconnect_delay_ms: int = 5000
    heartbeat_incoming_ms: int = 4000
    heartbeat_outgoing_ms: int = 4000
    day_cutoff: str = "18:00"
    default_duration: int = 60
    max_duration: int = 540
    sentry_dsn: Optional[str] = None
    environment: str = "development"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw and raw.isdigit() else default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def load_config() -> AppConfig:
    return AppConfig(
        api_base_url=os.getenv("API_BASE_URL", "http://localhost:8189").rstrip("/"),
        push_url=os.getenv("PUSH_URL", "ws://localhost:8189/ws"),
        request_timeout=_float_env("REQUEST_TIMEOUT", 15.0),
        reconnect_delay_ms=_int_env("RECONNECT_DELAY_MS", 5000),
        heartbeat_incoming_ms=_int_env("HEARTBEAT_INCOMING_MS", 4000),
        heartbeat_outgoing_ms=_int_env("HEARTBEAT_OUTGOING_MS", 4000),
        day_cutoff=os.getenv("DAY_CUTOFF", "18:00"),
        default_duration=_int_env("DEFAULT_DURATION", 60),
        max_duration=_int_env("MAX_DURATION", 540),
        sentry_dsn=os.getenv("SENTRY_DSN"),
        environment=os.getenv("ENVIRONMENT", "development"),
    )
