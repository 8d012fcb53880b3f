"""
Tests for gateway configuration and the shared error responses.
"""

import json

import pytest
from pydantic import ValidationError as SettingsValidationError

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import GatewayConfig, get_config
from shared.errors import (
    GatewayError,
    RateLimitExceeded,
    UpstreamFailure,
    ValidationError,
    create_error_response,
)


class TestGatewayConfig:
    """Test cases for GatewayConfig."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        """Remove gateway variables from the process environment."""
        for name in list(os.environ):
            if name.startswith("PROXYGRID_") or name == "CLIPROXYAPI_URL":
                monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        """Test configuration defaults."""
        config = GatewayConfig(_env_file=None)

        assert config.backend_url == "http://localhost:8317"
        assert config.route_prefix == "/api/proxygrid"
        assert config.backend_prefix == "/v1/proxygrid"
        assert config.secret == ""
        assert config.upstream_timeout == 30.0
        assert config.rate_limit_requests == 100
        assert config.rate_limit_window_ms == 60_000
        assert config.rate_limit_backend == "memory"

    def test_prefixed_environment(self, monkeypatch):
        """Test prefixed environment variables are loaded."""
        monkeypatch.setenv("PROXYGRID_BACKEND_URL", "http://grid:9000")
        monkeypatch.setenv("PROXYGRID_SECRET", "abc")
        monkeypatch.setenv("PROXYGRID_RATE_LIMIT_REQUESTS", "5")

        config = GatewayConfig(_env_file=None)

        assert config.backend_url == "http://grid:9000"
        assert config.secret == "abc"
        assert config.rate_limit_requests == 5

    def test_legacy_backend_variable(self, monkeypatch):
        """Test legacy backend URL variable is honoured."""
        monkeypatch.setenv("CLIPROXYAPI_URL", "http://legacy:8317")
        assert GatewayConfig(_env_file=None).backend_url == "http://legacy:8317"

    def test_overrides(self):
        """Test keyword overrides through get_config."""
        config = get_config(env="production", rate_limit_window_ms=1000)
        assert config.is_production is True
        assert config.is_development is False
        assert config.rate_limit_window_ms == 1000

    @pytest.mark.parametrize("field", ["rate_limit_requests", "rate_limit_window_ms"])
    def test_rejects_non_positive_limits(self, field):
        """Test non-positive rate limit settings are rejected."""
        with pytest.raises(SettingsValidationError):
            GatewayConfig(_env_file=None, **{field: 0})

    def test_rejects_unknown_backend(self):
        """Test unknown rate limit backends are rejected."""
        with pytest.raises(SettingsValidationError):
            GatewayConfig(_env_file=None, rate_limit_backend="memcached")


class TestErrorResponses:
    """Test cases for the uniform error body."""

    def test_body_contains_only_message(self):
        """Test error body carries only the message."""
        response = create_error_response("Boom", 418)
        assert response.status_code == 418
        assert json.loads(response.body) == {"error": "Boom"}

    def test_timestamp_when_requested(self):
        """Test timestamp is added on request."""
        body = json.loads(create_error_response("Boom", include_timestamp=True).body)
        assert set(body) == {"error", "timestamp"}

    def test_validation_error(self):
        """Test validation error response."""
        exc = ValidationError("Invalid domain format")
        assert exc.status_code == 400
        assert exc.code == "VALIDATION_ERROR"
        assert json.loads(exc.to_response().body) == {"error": "Invalid domain format"}

    def test_rate_limit_exceeded_carries_headers(self):
        """Test rate limit error keeps its response headers."""
        exc = RateLimitExceeded(headers={"Retry-After": "60"})
        response = exc.to_response()
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert json.loads(response.body) == {"error": "Too many requests"}

    def test_upstream_failure_hides_cause(self):
        """Test upstream failure response hides the underlying cause."""
        exc = UpstreamFailure(reason="timeout", details={"error": "ReadTimeout to 10.0.0.5"})
        body = json.loads(exc.to_response().body)
        assert exc.status_code == 503
        assert body == {"error": "Service temporarily unavailable"}

    def test_subclasses_share_base(self):
        """Test every gateway error derives from GatewayError."""
        for exc in (ValidationError(), RateLimitExceeded(), UpstreamFailure()):
            assert isinstance(exc, GatewayError)
