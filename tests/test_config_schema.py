"""Tests for remsync.config_schema -- Pydantic config models."""

import pytest
from pydantic import ValidationError

from remsync.config_schema import (
    LoggingConfig,
    RemoteConfig,
    StoreConfig,
    UnifiedConfig,
    build_config,
)


class TestSectionModels:
    def test_remote_defaults(self):
        remote = RemoteConfig()
        assert remote.device_token is None
        assert remote.max_parallel_fetches == 4
        assert remote.timeout == 60

    def test_remote_range(self):
        with pytest.raises(ValidationError):
            RemoteConfig(max_parallel_fetches=20)

    def test_store(self):
        assert StoreConfig(path="~/rm").path == "~/rm"

    def test_logging_format(self):
        assert LoggingConfig(format="json").format == "json"
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")

    def test_frozen(self):
        with pytest.raises(ValidationError):
            RemoteConfig().timeout = 5


class TestBuildConfig:
    def test_empty(self):
        assert build_config({}) == UnifiedConfig()

    def test_sections(self):
        unified = build_config(
            {
                "remote": {"device_token": "tok", "timeout": 10},
                "store": {"path": "/data/rm"},
                "logging": {"level": "DEBUG"},
            }
        )
        assert unified.remote.device_token == "tok"
        assert unified.remote.timeout == 10
        assert unified.store.path == "/data/rm"
        assert unified.logging.level == "DEBUG"

    def test_empty_section_gets_defaults(self):
        unified = build_config({"remote": None})
        assert unified.remote == RemoteConfig()

    def test_unknown_sections_ignored(self, caplog):
        unified = build_config({"sync": {"x": 1}, "store": {"path": "/p"}})
        assert unified.store.path == "/p"
        assert "sync" in caplog.text

    def test_invalid_section(self):
        with pytest.raises(ValidationError):
            build_config({"remote": {"timeout": "never"}})

    def test_fallbacks_exclude_none(self):
        unified = build_config({"remote": {"device_token": "tok"}})
        fallbacks = {
            k: v
            for k, v in unified.remote.model_dump().items()
            if v is not None
        }
        assert "auth_server" not in fallbacks
        assert fallbacks["device_token"] == "tok"
