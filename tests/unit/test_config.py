"""Tests for settings, structured logging and the error hierarchy."""

import json
import logging
import warnings

import pytest

from registry_sync.common.config import RegistrySyncSettings, get_settings
from registry_sync.common.exceptions import (
    ChainNotConfiguredError,
    ChainUnavailableError,
    InvalidQueryError,
    RegistrySyncError,
)
from registry_sync.common.logging import JSONFormatter, setup_logging


class TestSettings:
    def test_defaults(self):
        settings = RegistrySyncSettings()
        assert settings.chunk_size == 2000
        assert settings.chunk_delay == 0.2
        assert settings.sync_from_block == 0
        assert settings.chain_configured is False

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("REGISTRY_RPC_URL", "http://node:8545")
        monkeypatch.setenv("REGISTRY_CONTRACT_ADDRESS", "0x" + "12" * 20)
        monkeypatch.setenv("REGISTRY_CHUNK_SIZE", "500")
        settings = RegistrySyncSettings()
        assert settings.rpc_url == "http://node:8545"
        assert settings.chunk_size == 500
        assert settings.chain_configured is True

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValueError):
            RegistrySyncSettings(chunk_size=0)

    def test_negative_from_block_rejected(self):
        with pytest.raises(ValueError):
            RegistrySyncSettings(sync_from_block=-1)

    def test_missing_chain_in_production_raises(self):
        settings = RegistrySyncSettings(environment="production")
        with pytest.raises(RuntimeError, match="REGISTRY_RPC_URL"):
            settings.validate_for_production()

    def test_missing_chain_in_development_warns(self):
        settings = RegistrySyncSettings()
        with pytest.warns(UserWarning):
            settings.validate_for_production()

    def test_configured_chain_is_silent(self):
        settings = RegistrySyncSettings(
            environment="production",
            rpc_url="http://node:8545",
            contract_address="0x" + "12" * 20,
        )
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            settings.validate_for_production()

    def test_get_settings_cached(self, monkeypatch):
        monkeypatch.setenv("REGISTRY_RPC_URL", "http://node:8545")
        monkeypatch.setenv("REGISTRY_CONTRACT_ADDRESS", "0x" + "12" * 20)
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord(
            "registry_sync.test", logging.WARNING, __file__, 1, "chunk %s failed", ("10-19",), None,
        )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "registry_sync.test"
        assert entry["message"] == "chunk 10-19 failed"
        assert "exception" not in entry

    def test_json_formatter_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            record = logging.LogRecord(
                "registry_sync.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info(),
            )
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]

    def test_setup_logging_is_idempotent(self):
        logger = logging.getLogger("registry_sync")
        saved = (list(logger.handlers), logger.propagate, logger.level)
        try:
            setup_logging("DEBUG")
            setup_logging("DEBUG")
            json_handlers = [h for h in logger.handlers if isinstance(h.formatter, JSONFormatter)]
            assert len(json_handlers) == 1
            assert logger.level == logging.DEBUG
        finally:
            logger.handlers[:] = saved[0]
            logger.propagate = saved[1]
            logger.setLevel(saved[2])


class TestExceptions:
    @pytest.mark.parametrize("exc_type, code", [
        (ChainUnavailableError, "CHAIN_UNAVAILABLE"),
        (ChainNotConfiguredError, "CHAIN_NOT_CONFIGURED"),
        (InvalidQueryError, "INVALID_QUERY"),
    ])
    def test_codes(self, exc_type, code):
        exc = exc_type()
        assert isinstance(exc, RegistrySyncError)
        assert exc.code == code
        assert str(exc) == exc.message

    def test_custom_message(self):
        exc = InvalidQueryError("bad owner")
        assert exc.message == "bad owner"
