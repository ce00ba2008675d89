"""Environment-driven settings and request-scoped logging context."""

import pydantic
import pytest
import structlog

from storefront.config import Settings
from storefront.utils.logging import bind_request_context, clear_request_context


class TestSettingsFromEnvironment:
    def test_reads_aliased_variables(self, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        monkeypatch.setenv("GATEWAY_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("SSLCOMMERZ_IS_LIVE", "true")
        monkeypatch.setenv("INVENTORY_DATABASE_URI", "sqlite://")

        settings = Settings()

        assert settings.is_production
        assert settings.gateway_timeout == 2.5
        assert settings.sslcommerz_is_live is True
        assert settings.inventory_database_uri == "sqlite://"

    def test_keyword_arguments_override_environment(self, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        assert Settings(environment="test").is_production is False

    def test_rejects_non_positive_timeout(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_TIMEOUT_SECONDS", "0")
        with pytest.raises(pydantic.ValidationError):
            Settings()

    def test_rejects_unknown_log_level(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(log_level="chatty")

    def test_log_level_is_normalised(self):
        assert Settings(log_level="debug").log_level == "DEBUG"


class TestRequestLoggingContext:
    def test_bind_replaces_previous_request(self):
        bind_request_context(method="GET", path="/orders", user_id="user-001")
        bind_request_context(method="POST", path="/carts/me/items", user_id="user-002")

        assert structlog.contextvars.get_contextvars() == {
            "method": "POST",
            "path": "/carts/me/items",
            "user_id": "user-002",
        }

        clear_request_context()
        assert structlog.contextvars.get_contextvars() == {}
