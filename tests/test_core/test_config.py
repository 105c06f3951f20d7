"""Tests for environment-driven settings."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from splitledger.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SPLITLEDGER_DEFAULT_CURRENCY", raising=False)
        monkeypatch.delenv("SPLITLEDGER_LEDGER_MAX_RETRIES", raising=False)
        settings = Settings(_env_file=None)
        assert settings.default_currency == "INR"
        assert settings.percentage_tolerance == Decimal("0.01")
        assert settings.ledger_max_retries == 3
        assert settings.max_note_length == 500
        assert settings.database_url.startswith("postgresql+asyncpg://")

    def test_env_prefix_and_normalisation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPLITLEDGER_DEFAULT_CURRENCY", " usd ")
        monkeypatch.setenv("SPLITLEDGER_DATABASE_URL", "  postgresql+asyncpg://u:p@db/x\n")
        settings = Settings(_env_file=None)
        assert settings.default_currency == "USD"
        assert settings.database_url == "postgresql+asyncpg://u:p@db/x"

    def test_retries_must_be_positive(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPLITLEDGER_LEDGER_MAX_RETRIES", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)
