"""Tests for environment-driven settings and their validation."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from debt_market.core.config import Settings


def _settings(**overrides) -> Settings:
    fields = {"indexer_api_url": "https://indexer.example.com/graphql"}
    fields.update(overrides)
    return Settings(_env_file=None, **fields)


class TestSettings:
    def test_defaults(self) -> None:
        settings = _settings()
        assert settings.database_url.startswith("sqlite+aiosqlite://")
        assert settings.sync_enabled is True
        assert settings.sync_interval_seconds == 30
        assert settings.signature_scheme == "eip712"
        assert settings.port == 3002

    def test_indexer_url_is_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("INDEXER_API_URL", raising=False)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INDEXER_API_URL", "https://primary.example.com")
        monkeypatch.setenv("INDEXER_BACKUP_URLS", "https://b1.example.com, https://b2.example.com")
        monkeypatch.setenv("SYNC_ENABLED", "false")
        monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "60")

        settings = Settings(_env_file=None)

        assert settings.indexer_endpoints == [
            "https://primary.example.com",
            "https://b1.example.com",
            "https://b2.example.com",
        ]
        assert settings.sync_enabled is False
        assert settings.sync_interval_seconds == 60

    @pytest.mark.parametrize(
        "overrides",
        [
            {"indexer_api_url": "not a url"},
            {"indexer_backup_urls": "https://ok.example.com,ftp//broken"},
            {"indexer_api_key": "   "},
            {"database_url": "::not-a-db-url::"},
            {"sync_interval_seconds": 0},
            {"signature_scheme": "personal_sign"},
            {"signature_scheme_overrides": "1337=eip712"},
            {"signature_scheme_overrides": "1337:0xabc=unknown"},
        ],
    )
    def test_invalid_values_are_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            _settings(**overrides)

    def test_cors_origins_are_split(self) -> None:
        settings = _settings(cors_origins="http://a.example.com, http://b.example.com,")
        assert settings.cors_origin_list == ["http://a.example.com", "http://b.example.com"]

    def test_scheme_overrides_are_parsed(self) -> None:
        settings = _settings(
            signature_scheme="RAW_STRUCT_HASH",
            signature_scheme_overrides="1337:0x5FbDB2315678afecb367f032d93F642f64180aa3=eip712, 1:0xabc=raw_struct_hash",
        )
        assert settings.signature_scheme == "raw_struct_hash"
        assert settings.scheme_overrides == {
            (1337, "0x5fbdb2315678afecb367f032d93f642f64180aa3"): "eip712",
            (1, "0xabc"): "raw_struct_hash",
        }
