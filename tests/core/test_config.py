"""Settings loading and the startup signing-key check."""
import pytest
from pydantic import ValidationError

from ledger.core.config import Settings, _check_signing_key, _signing_key_problem


class TestSigningKey:
    def test_placeholder_is_flagged(self):
        assert "placeholder" in _signing_key_problem(Settings(api_secret_key="CHANGE_ME"))

    def test_short_key_is_flagged(self):
        assert "too short" in _signing_key_problem(Settings(api_secret_key="x" * 31))

    def test_long_key_passes(self):
        assert _signing_key_problem(Settings(api_secret_key="x" * 32)) is None

    def test_production_exits(self):
        with pytest.raises(SystemExit):
            _check_signing_key(Settings(api_secret_key="CHANGE_ME", environment="production"))

    def test_development_only_warns(self, caplog):
        _check_signing_key(Settings(api_secret_key="CHANGE_ME", environment="development"))
        assert "API_SECRET_KEY" in caplog.text


class TestRecurringSettings:
    def test_generation_hour_from_env(self, monkeypatch):
        monkeypatch.setenv("RECURRING_GENERATION_HOUR_UTC", "7")
        monkeypatch.setenv("RECURRING_GENERATION_ENABLED", "false")

        s = Settings()

        assert s.recurring_generation_hour_utc == 7
        assert s.recurring_generation_enabled is False

    def test_generation_hour_out_of_range(self):
        with pytest.raises(ValidationError):
            Settings(recurring_generation_hour_utc=24)
