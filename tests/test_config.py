"""
Tests for configuration validation and context wiring.
"""
import pytest

from app.core import config
from app.core.error_sink import NullErrorSink, build_error_sink
from app.core.errors import ConfigurationError
from tests.conftest import make_context


class TestValidateSettings:
    def test_all_present(self, monkeypatch):
        monkeypatch.setattr(config, "ENCRYPTION_KEY", "k")
        monkeypatch.setattr(config, "AUDIT_SIGNING_KEY", "s")
        monkeypatch.setattr(config, "SESSION_SECRET", "t")
        config.validate_settings()

    def test_missing_are_listed(self, monkeypatch):
        monkeypatch.setattr(config, "ENCRYPTION_KEY", None)
        monkeypatch.setattr(config, "AUDIT_SIGNING_KEY", "")
        monkeypatch.setattr(config, "SESSION_SECRET", "t")
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_settings()
        assert "ENCRYPTION_KEY" in str(exc_info.value)
        assert "AUDIT_SIGNING_KEY" in str(exc_info.value)
        assert "SESSION_SECRET" not in str(exc_info.value)


class TestBuildContext:
    @pytest.mark.parametrize("missing", ["encryption_key", "audit_signing_key", "session_secret"])
    def test_missing_secret(self, missing):
        with pytest.raises(ConfigurationError):
            make_context(**{missing: None})

    def test_defaults_to_null_error_sink(self):
        assert isinstance(make_context().error_sink, NullErrorSink)


def test_error_sink_without_dsn():
    assert isinstance(build_error_sink(None, "test"), NullErrorSink)
