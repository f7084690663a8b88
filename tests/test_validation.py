"""
Tests for configuration validation and sensitive value masking.
"""

from dataclasses import dataclass
from typing import Annotated

import pytest
from pydantic import BaseModel, Field

from configmesh.configuration import bind, env_field
from configmesh.configuration.masking import mask_sensitive_value
from configmesh.configuration.validation import (
    ConfigurationValidationError,
    ConfigurationValidator,
    validate_config,
)
from configmesh.infrastructure.exceptions import ConfigurationError


@dataclass
class PoolSettings:
    size: Annotated[int, Field(ge=1, le=100)] = env_field("POOL_SIZE", default="10", zero=10)
    name: str = env_field("POOL_NAME", zero="pool")


class ServerModel(BaseModel):
    port: int = Field(8080, ge=1, le=65535, json_schema_extra={"env": "PORT"})
    host: str = Field("0.0.0.0", json_schema_extra={"env": "HOST"})


class TestConfigurationValidator:
    """Test validation of bound objects."""

    def test_valid_dataclass(self):
        """A dataclass within its constraints validates."""
        settings = PoolSettings()
        bind(settings, {"POOL_SIZE": "50"})
        ConfigurationValidator.validate(settings)

    def test_dataclass_constraint_violation(self):
        """Bound values outside the constraints are reported with their location."""
        settings = PoolSettings()
        bind(settings, {"POOL_SIZE": "500"})

        with pytest.raises(ConfigurationValidationError) as exc_info:
            ConfigurationValidator.validate(settings)

        error = exc_info.value
        assert error.error_code == "CONFIGURATION_VALIDATION_ERROR"
        assert error.validation_errors[0]["loc"] == ["PoolSettings", "size"]
        assert "PoolSettings -> size" in error.get_detailed_message()

    def test_model_constraint_violation(self):
        """Pydantic models are re-validated after binding."""
        model = ServerModel()
        bind(model, {"PORT": "70000"})

        with pytest.raises(ConfigurationValidationError):
            validate_config(model)

    def test_valid_model(self):
        """A model within its constraints validates."""
        model = ServerModel()
        bind(model, {"PORT": "9000", "HOST": "localhost"})
        validate_config(model)

    def test_unsupported_target(self):
        """Only dataclass and model instances can be validated."""
        with pytest.raises(ConfigurationValidationError, match="Configuration validation failed"):
            validate_config({"port": 1})

    def test_is_configuration_error(self):
        """Validation errors are configuration errors."""
        error = ConfigurationValidationError("bad", [{"loc": ["x"], "msg": "m"}])
        assert isinstance(error, ConfigurationError)
        assert error.context["validation_errors"] == [{"loc": ["x"], "msg": "m"}]
        assert error.get_detailed_message() == "bad\nValidation errors:\n- x: m"


class TestMaskSensitiveValue:
    """Test masking of values before logging."""

    @pytest.mark.parametrize("key,value,expected", [
        ("DB_PASSWORD", "supersecretvalue", "supe***alue"),
        ("API_TOKEN", "short", "***"),
        ("SIGNING_KEY", "12345678", "***"),
        ("SERVICE_NAME", "orders", "orders"),
        ("ANY", "", "(empty)"),
        ("DATABASE_URL", "postgres://user:pw@db:5432/app", "postgres://user:***@db:5432/app"),
        ("REDIS_URI", "token@cache:6379", "***@cache:6379"),
        ("HOMEPAGE_URL", "https://example.com", "https://example.com"),
    ])
    def test_masking(self, key, value, expected):
        """Sensitive keys and connection strings are masked."""
        assert mask_sensitive_value(key, value) == expected

    def test_dsn_key_is_sensitive(self):
        """DSN keys are masked as secrets."""
        assert mask_sensitive_value("SENTRY_DSN", "https://abc@sentry.io/1") == "http***io/1"
