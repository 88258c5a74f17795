"""Tests for log-safety helpers."""
import uuid

import httpx
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from idpsync.errors import ProviderUnreachableError
from idpsync.log import (
    describe_failure,
    generate_correlation_id,
    mask_email,
    redact_secrets,
    sanitize_error,
    summarize,
)


class TestCorrelationId:
    def test_is_uuid(self):
        assert uuid.UUID(generate_correlation_id())

    def test_unique(self):
        assert generate_correlation_id() != generate_correlation_id()


class TestMaskEmail:
    @pytest.mark.parametrize(
        "email,expected",
        [
            ("alice@example.com", "al***@example.com"),
            ("bo@example.com", "***@example.com"),
            ("not-an-email", "***"),
            ("", "***"),
        ],
    )
    def test_mask(self, email, expected):
        assert mask_email(email) == expected


class TestRedactSecrets:
    def test_ssws_token(self):
        assert redact_secrets("Authorization: SSWS 00abc-def") == "Authorization: SSWS [REDACTED]"

    def test_bearer_token(self):
        assert "eyJhbGci" not in redact_secrets("Bearer eyJhbGciOi.x.y failed")

    def test_query_style_secrets(self):
        message = redact_secrets("postgresql://u@h/db?password=hunter2 api_token=abc123")
        assert "hunter2" not in message
        assert "abc123" not in message

    def test_plain_message_unchanged(self):
        assert redact_secrets("Okta API error (500): boom") == "Okta API error (500): boom"


class TestSummarize:
    def test_short_message_unchanged(self):
        assert summarize("short") == "short"

    def test_long_message_truncated_to_200(self):
        summary = summarize("x" * 500)
        assert len(summary) == 200
        assert summary.endswith("...")


class TestSanitizeError:
    def test_empty_message_uses_class_name(self):
        message, summary = sanitize_error(ValueError())
        assert message == "ValueError"
        assert summary == "ValueError"


class TestDescribeFailure:
    def test_database_connection_refused(self):
        exc = OperationalError("connect", {}, Exception("connect ECONNREFUSED: connection refused"))
        message = describe_failure(exc)
        assert message.startswith("Database connection failed:")
        assert "DATABASE_URL" in message

    def test_non_database_connection_refused_is_not_database_guidance(self):
        message = describe_failure(RuntimeError("[Errno 111] Connection refused"))
        assert message == "[Errno 111] Connection refused"

    def test_okta_transport_error(self):
        message = describe_failure(httpx.ConnectError("[Errno 111] Connection refused"))
        assert message.startswith("Could not reach Okta:")
        assert "OKTA_DOMAIN" in message
        assert "DATABASE_URL" not in message

    def test_provider_unreachable_passes_through(self):
        exc = ProviderUnreachableError("https://example.okta.com", httpx.ConnectError("Connection refused"))
        assert describe_failure(exc) == str(exc)

    def test_operational_error(self):
        exc = OperationalError("SELECT 1", {}, Exception("no such table: syncrun"))
        message = describe_failure(exc)
        assert message.startswith("Database error:")
        assert "migrations" in message

    def test_other_sqlalchemy_error(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        assert describe_failure(exc).startswith("Database client error:")

    def test_unrelated_error_passes_through(self):
        assert describe_failure(ValueError("boom")) == "boom"

    def test_secrets_never_survive(self):
        assert "00abc" not in describe_failure(RuntimeError("header SSWS 00abc rejected"))
