import json
import logging

import pytest

from app.core import sentry
from app.core.config import settings
from app.core.logging import ContextTextFormatter, JSONFormatter
from app.core.metrics import _normalize_path
from app.gateway.errors import (
    AiError,
    AiNotFoundError,
    DescriptionTooShortError,
    NotConfiguredError,
    ProviderError,
    RateLimitExceededError,
)
from app.gateway.types import ProviderErrorKind
from app.main import ai_error_status


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("app.gateway", logging.INFO, __file__, 1, "AI call for %s", ("summary",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogging:
    def test_json_formatter_includes_context(self):
        data = json.loads(JSONFormatter().format(_record(endpoint="summary", user_id=42, provider="openai")))
        assert data["message"] == "AI call for summary"
        assert data["level"] == "INFO"
        assert data["endpoint"] == "summary"
        assert data["user_id"] == "42"
        assert "issue_id" not in data

    def test_text_formatter_appends_context(self):
        line = ContextTextFormatter().format(_record(request_id="abc123"))
        assert line.endswith("| request_id=abc123")

    def test_text_formatter_without_context(self):
        assert ContextTextFormatter().format(_record()).endswith("AI call for summary")


class TestSentryScrubbing:
    def test_filters_secret_keys(self):
        event = {"request": {"headers": {"Authorization": "Bearer x", "Accept": "json"}}}
        scrubbed = sentry._before_send(event, None)
        assert scrubbed["request"]["headers"]["Authorization"] == "[Filtered]"
        assert scrubbed["request"]["headers"]["Accept"] == "json"

    def test_masks_configured_api_key_in_messages(self, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", "sk-live-123")
        event = {"message": "401 for key sk-live-123", "extra": [{"note": "sk-live-123"}]}
        scrubbed = sentry._before_send(event, None)
        assert scrubbed["message"] == "401 for key [Filtered]"
        assert scrubbed["extra"][0]["note"] == "[Filtered]"


class TestMetrics:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/api/v1/issues/42", "/api/v1/issues/{id}"),
            ("/api/v1/ai/summary", "/api/v1/ai/summary"),
            ("/api/v1/issues/7/labels", "/api/v1/issues/{id}/labels"),
        ],
    )
    def test_normalize_path(self, path, expected):
        assert _normalize_path(path) == expected


class TestErrorStatus:
    def test_mapping(self):
        assert ai_error_status(NotConfiguredError("no key")) == 400
        assert ai_error_status(DescriptionTooShortError()) == 400
        assert ai_error_status(AiNotFoundError("Issue not found")) == 404
        assert ai_error_status(RateLimitExceededError(20, 1, 30)) == 429
        assert ai_error_status(ProviderError("down", kind=ProviderErrorKind.TRANSIENT)) == 503
        assert ai_error_status(ProviderError("bad key", kind=ProviderErrorKind.AUTH)) == 502
        assert ai_error_status(AiError("other")) == 500
