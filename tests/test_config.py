"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from period_ledger.config import LedgerSettings, StorageSettings, get_settings, validate_all_settings


class TestLedgerSettings:

    def test_defaults(self, monkeypatch):
        for name in ("LEDGER_DEFAULT_PERIOD_START_DAY", "LEDGER_TIMEZONE"):
            monkeypatch.delenv(name, raising=False)
        settings = LedgerSettings()

        assert settings.default_period_start_day == 1
        assert settings.timezone == "UTC"
        assert settings.sync_retry_attempts >= 1

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DEFAULT_PERIOD_START_DAY", "15")
        monkeypatch.setenv("LEDGER_TIMEZONE", "Europe/Moscow")
        settings = LedgerSettings()

        assert settings.default_period_start_day == 15
        assert settings.timezone == "Europe/Moscow"

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            LedgerSettings(timezone="Mars/Olympus_Mons")

    @pytest.mark.parametrize("start_day", [0, 32])
    def test_start_day_range(self, start_day):
        with pytest.raises(ValidationError):
            LedgerSettings(default_period_start_day=start_day)


class TestStorageSettings:

    def test_path_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LEDGER_DB_PATH", str(tmp_path / "x.db"))
        assert StorageSettings().path == str(tmp_path / "x.db")


class TestValidateAllSettings:

    def test_reports_invalid_section(self, monkeypatch):
        monkeypatch.setenv("LEDGER_TIMEZONE", "Nowhere/Special")
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()

        assert results["ledger"] is False
        assert "Nowhere/Special" in results["ledger_error"]
        assert results["storage"] is True
