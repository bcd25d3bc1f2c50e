import asyncio
import json

import pytest

from bookmarkr_news.services.crawl_adapter import ExtractionError
from bookmarkr_news.services.fetch_adapter import SourceConfigurationError
from bookmarkr_news.services.http_client import FetchError, HTTPStatusError
from bookmarkr_news.utils.error_monitoring import ErrorHandler, ErrorKind


class TestClassification:
    @pytest.mark.parametrize("error,kind", [
        (HTTPStatusError(503, "https://x.com"), ErrorKind.TRANSIENT),
        (HTTPStatusError(429, "https://x.com"), ErrorKind.TRANSIENT),
        (HTTPStatusError(404, "https://x.com"), ErrorKind.CONFIGURATION),
        (asyncio.TimeoutError(), ErrorKind.TRANSIENT),
        (ConnectionResetError(), ErrorKind.TRANSIENT),
        (ExtractionError("no blocks"), ErrorKind.PARSE),
        (json.JSONDecodeError("bad", "{", 0), ErrorKind.PARSE),
        (SourceConfigurationError("no feed_url"), ErrorKind.CONFIGURATION),
        (RuntimeError("who knows"), ErrorKind.UNKNOWN),
    ])
    def test_classify_kind(self, error, kind):
        assert ErrorHandler().classify_kind(error) == kind

    def test_fetch_error_is_transient(self):
        error = FetchError("connection refused", "https://x.com")
        assert ErrorHandler().classify_kind(error) == ErrorKind.TRANSIENT


class TestRecording:
    def test_handle_error_records_context(self):
        handler = ErrorHandler()

        context = handler.handle_error(HTTPStatusError(429, "https://x.com"), "gnews", "fetch")

        assert context.kind == "transient"
        assert context.severity == "low"
        assert "Rate limited" in context.recovery_action
        assert handler.get_error_statistics()["error_types"] == {"HTTPStatusError": 1}

    def test_repeated_failures_become_pattern(self):
        handler = ErrorHandler()
        for _ in range(3):
            handler.record_failure("dribbble", "crawl", "ExtractionError", "no blocks", "parse")

        assert handler.detect_error_patterns() == [
            "Repeated pattern: ExtractionError from dribbble occurred 3 times recently",
        ]

    def test_history_is_bounded(self):
        handler = ErrorHandler(history_size=2)
        for n in range(5):
            handler.record_failure(f"s{n}", "feed", "FetchError", "down", "transient")

        stats = handler.get_error_statistics()
        assert stats["total_errors"] == 5
        assert [entry["source_id"] for entry in stats["recent"]] == ["s3", "s4"]
