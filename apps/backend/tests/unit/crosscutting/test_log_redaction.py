"""
Name: Structured Logging Tests

Responsibilities:
  - Secret VALUES never reach the log output
  - Request / procedure context is merged into every line
  - Oversized values are truncated
"""

import json
import logging

import pytest

from erp.context import clear_context, set_procedure_context, set_request_context
from erp.crosscutting.logger import JSONFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="Test message",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestSecretRedaction:
    @pytest.mark.parametrize(
        "key",
        [
            "password",
            "password_hash",
            "secret",
            "token",
            "authorization",
            "access_token",
            "jwt_secret",
            "cookie",
            "bank_account",
            "tax_id",
        ],
    )
    def test_sensitive_value_redacted(self, key):
        output = JSONFormatter().format(_record(**{key: f"secret-value-{key}"}))
        assert f"secret-value-{key}" not in output

    def test_nested_sensitive_value_redacted(self):
        output = JSONFormatter().format(
            _record(payload={"email": "a@example.com", "password": "hunter22"})
        )
        payload = json.loads(output)["payload"]
        assert payload["email"] == "a@example.com"
        assert "hunter22" not in output

    def test_non_sensitive_fields_are_logged(self):
        output = JSONFormatter().format(_record(entity_type="Invoice", entity_id="inv-1"))
        log_dict = json.loads(output)
        assert log_dict["entity_type"] == "Invoice"
        assert log_dict["entity_id"] == "inv-1"

    def test_long_strings_truncated(self):
        output = JSONFormatter().format(_record(note="x" * 10_000))
        assert len(json.loads(output)["note"]) < 10_000


@pytest.mark.unit
class TestContextEnrichment:
    def teardown_method(self):
        clear_context()

    def test_request_and_procedure_context_included(self):
        set_request_context(request_id="req-1", method="POST", path="/v1/rpc/sales.void_invoice")
        set_procedure_context(procedure="sales.void_invoice", user_id="u-1")

        log_dict = json.loads(JSONFormatter().format(_record()))

        assert log_dict["request_id"] == "req-1"
        assert log_dict["procedure"] == "sales.void_invoice"
        assert log_dict["user_id"] == "u-1"

    def test_empty_context_is_omitted(self):
        clear_context()
        log_dict = json.loads(JSONFormatter().format(_record()))
        assert "request_id" not in log_dict
