"""Runtime settings for the ordering engine.

Values come from environment variables with the defaults the marketplace runs
with in production. Provides get_settings() / set_settings() / reset_settings()
so tests can swap in a tuned copy without touching the environment.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _shipping_rates_env() -> dict[str, int]:
    raw = os.getenv("SHIPPING_RATES")
    if not raw:
        return {"STANDARD": 0}
    return {str(method).upper(): int(cost) for method, cost in json.loads(raw).items()}


@dataclass(frozen=True)
class Settings:
    payment_window_minutes: int = 60
    auto_confirm_days: int = 7
    idempotency_ttl_seconds: int = 60
    voucher_rollback_window_minutes: int = 10
    job_max_attempts: int = 3
    job_backoff_seconds: float = 1.0
    job_lease_seconds: float = 300.0
    max_store_radius_km: float = 10.0
    shipping_rates: dict[str, int] = field(default_factory=lambda: {"STANDARD": 0})
    job_queue_adapter: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    payment_gateway_adapter: str = "fake"
    midtrans_server_key: str = ""

    @property
    def payment_window(self) -> timedelta:
        return timedelta(minutes=self.payment_window_minutes)

    @property
    def auto_confirm_dwell(self) -> timedelta:
        return timedelta(days=self.auto_confirm_days)

    @property
    def voucher_rollback_window(self) -> timedelta:
        return timedelta(minutes=self.voucher_rollback_window_minutes)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            payment_window_minutes=_int_env("PAYMENT_WINDOW_MINUTES", 60),
            auto_confirm_days=_int_env("AUTO_CONFIRM_DAYS", 7),
            idempotency_ttl_seconds=_int_env("IDEMPOTENCY_TTL_SECONDS", 60),
            voucher_rollback_window_minutes=_int_env("VOUCHER_ROLLBACK_WINDOW_MINUTES", 10),
            job_max_attempts=_int_env("JOB_MAX_ATTEMPTS", 3),
            job_backoff_seconds=_float_env("JOB_BACKOFF_SECONDS", 1.0),
            job_lease_seconds=_float_env("JOB_LEASE_SECONDS", 300.0),
            max_store_radius_km=_float_env("MAX_STORE_RADIUS_KM", 10.0),
            shipping_rates=_shipping_rates_env(),
            job_queue_adapter=os.getenv("JOB_QUEUE_ADAPTER", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            payment_gateway_adapter=os.getenv("PAYMENT_GATEWAY_ADAPTER", "fake").lower(),
            midtrans_server_key=os.getenv("MIDTRANS_SERVER_KEY", ""),
        )


_current_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings, reading the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = Settings.from_env()
    return _current_settings


def set_settings(settings: Settings) -> None:
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    global _current_settings
    _current_settings = None
