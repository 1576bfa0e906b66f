"""Tests for environment-driven settings."""

from datetime import timedelta

from ordering.config import Settings, get_settings, reset_settings, set_settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.payment_window == timedelta(minutes=60)
        assert settings.auto_confirm_dwell == timedelta(days=7)
        assert settings.voucher_rollback_window == timedelta(minutes=10)
        assert settings.shipping_rates == {"STANDARD": 0}

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_WINDOW_MINUTES", "30")
        monkeypatch.setenv("AUTO_CONFIRM_DAYS", "3")
        monkeypatch.setenv("JOB_BACKOFF_SECONDS", "0.5")
        monkeypatch.setenv("SHIPPING_RATES", '{"standard": 0, "express": 15000}')
        monkeypatch.setenv("JOB_QUEUE_ADAPTER", "Redis")

        settings = Settings.from_env()
        assert settings.payment_window == timedelta(minutes=30)
        assert settings.auto_confirm_dwell == timedelta(days=3)
        assert settings.job_backoff_seconds == 0.5
        assert settings.shipping_rates == {"STANDARD": 0, "EXPRESS": 15000}
        assert settings.job_queue_adapter == "redis"

    def test_blank_values_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_WINDOW_MINUTES", "")
        assert Settings.from_env().payment_window_minutes == 60

    def test_override_and_reset(self, monkeypatch):
        monkeypatch.delenv("PAYMENT_WINDOW_MINUTES", raising=False)
        set_settings(Settings(payment_window_minutes=5))
        assert get_settings().payment_window_minutes == 5

        reset_settings()
        assert get_settings().payment_window_minutes == 60
