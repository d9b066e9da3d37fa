"""
Name: Settings and Error Factory Tests

Responsibilities:
  - Production hardening rules in Settings
  - Numeric validators (sequence attempts, epsilon, page sizes)
  - RFC 7807 error factories
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from erp.crosscutting.config import Settings
from erp.crosscutting.error_responses import (
    ErrorCode,
    method_not_allowed,
    precondition_failed,
    unauthenticated,
)

pytestmark = pytest.mark.unit

STRONG_SECRET = "x" * 40


def _production(**overrides) -> Settings:
    values = dict(
        app_env="production",
        jwt_secret=STRONG_SECRET,
        jwt_cookie_secure=True,
        database_url="postgresql://erp@db/erp",
    )
    values.update(overrides)
    return Settings(**values)


class TestProductionHardening:
    def test_valid_production_settings(self):
        settings = _production()
        assert settings.is_production()
        assert not settings.is_test()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"jwt_secret": "dev-secret"},
            {"jwt_secret": "short"},
            {"jwt_cookie_secure": False},
            {"database_url": ""},
        ],
    )
    def test_insecure_production_settings_rejected(self, overrides):
        with pytest.raises(PydanticValidationError):
            _production(**overrides)

    def test_development_allows_defaults(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET", raising=False)
        settings = Settings(app_env="development")
        assert settings.jwt_secret == "dev-secret"


class TestNumericSettings:
    def test_defaults(self):
        settings = Settings(app_env="test")
        assert settings.sequence_max_attempts == 5
        assert settings.money_epsilon == Decimal("0.01")
        assert settings.is_test()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"sequence_max_attempts": 0},
            {"money_epsilon": "-0.01"},
            {"default_page_size": 500, "max_page_size": 200},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(PydanticValidationError):
            Settings(app_env="test", **overrides)

    def test_allowed_origins_list(self):
        settings = Settings(allowed_origins=" http://a.test , ,http://b.test")
        assert settings.get_allowed_origins_list() == ["http://a.test", "http://b.test"]


class TestErrorFactories:
    def test_unauthenticated(self):
        exc = unauthenticated()
        assert exc.status_code == 401
        assert exc.code == ErrorCode.UNAUTHENTICATED

    def test_precondition_failed(self):
        exc = precondition_failed("Invoice is already void")
        assert exc.status_code == 412
        assert exc.detail == "Invoice is already void"

    def test_method_not_allowed(self):
        exc = method_not_allowed("use POST")
        assert exc.status_code == 405
        assert exc.code == ErrorCode.METHOD_NOT_ALLOWED
