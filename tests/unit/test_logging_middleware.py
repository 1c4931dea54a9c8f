"""
Unit tests for the access-log middleware and the pipeline.
"""

import json
import logging

import pytest

from staticserve.http.request import HTTPRequest
from staticserve.http.response import HTTPResponse, ResponseBuilder
from staticserve.middleware import (
    ACCESS_LOGGER_NAME,
    LoggingMiddleware,
    Middleware,
    MiddlewarePipeline,
    RequestLog,
)
from staticserve.middleware.logging import format_address


def ok_handler(request: HTTPRequest) -> HTTPResponse:
    return ResponseBuilder().text("ok").build()


class Recorder(Middleware):
    """Appends its tag on the way in and out."""

    def __init__(self, tag: str, events: list):
        self.tag = tag
        self.events = events

    def __call__(self, request, next):
        self.events.append(f"{self.tag}:in")
        response = next(request)
        self.events.append(f"{self.tag}:out")
        return response


class TestLoggingMiddleware:
    """Tests for LoggingMiddleware."""

    def test_text_record(self, make_request, caplog):
        """One 'ip:port METHOD path' line per request."""
        middleware = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger=ACCESS_LOGGER_NAME):
            middleware(make_request("/css/site.css"), ok_handler)

        records = [r for r in caplog.records if r.name == ACCESS_LOGGER_NAME]
        assert len(records) == 1
        assert records[0].getMessage() == "127.0.0.1:50000 GET /css/site.css"
        assert records[0].levelno == logging.INFO

    def test_json_record(self, make_request, caplog):
        middleware = LoggingMiddleware(log_format="json")

        with caplog.at_level(logging.INFO, logger=ACCESS_LOGGER_NAME):
            middleware(make_request("/", method="HEAD"), ok_handler)

        payload = json.loads(caplog.records[-1].getMessage())
        assert payload == {"remote_addr": "127.0.0.1:50000", "method": "HEAD", "path": "/"}

    def test_logs_before_handler_runs(self, make_request, caplog):
        """The record exists even when the handler never returns normally."""
        middleware = LoggingMiddleware()

        def exploding(request):
            assert any(r.name == ACCESS_LOGGER_NAME for r in caplog.records)
            raise RuntimeError("boom")

        with caplog.at_level(logging.INFO, logger=ACCESS_LOGGER_NAME):
            with pytest.raises(RuntimeError, match="boom"):
                middleware(make_request("/x"), exploding)

    def test_does_not_alter_request_or_response(self, make_request):
        request = make_request("/a?b=c")
        seen = []

        def handler(req):
            seen.append(req)
            return ok_handler(req)

        response = LoggingMiddleware()(request, handler)

        assert seen == [request]
        assert seen[0] is request
        assert response.body == b"ok"

    def test_injected_logger(self, make_request):
        """A custom logger receives the records."""
        records = []

        class ListHandler(logging.Handler):
            def emit(self, record):
                records.append(record.getMessage())

        logger = logging.getLogger("staticserve.tests.injected")
        logger.setLevel(logging.INFO)
        logger.propagate = False
        handler = ListHandler()
        logger.addHandler(handler)
        try:
            LoggingMiddleware(logger=logger)(make_request("/js/app.js"), ok_handler)
        finally:
            logger.removeHandler(handler)

        assert records == ["127.0.0.1:50000 GET /js/app.js"]

    def test_disabled_level_is_silent(self, make_request, caplog):
        middleware = LoggingMiddleware(level=logging.DEBUG)

        with caplog.at_level(logging.INFO, logger=ACCESS_LOGGER_NAME):
            middleware(make_request("/"), ok_handler)

        assert not [r for r in caplog.records if r.name == ACCESS_LOGGER_NAME]

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            LoggingMiddleware(log_format="xml")


class TestRequestLog:
    """Tests for the record formatting helpers."""

    def test_ipv6_is_bracketed(self):
        assert format_address(("::1", 8080)) == "[::1]:8080"
        assert format_address(("10.0.0.1", 80)) == "10.0.0.1:80"
        assert format_address(()) == "-"

    def test_from_request(self):
        request = HTTPRequest(method="GET", path="/a b", client_address=("::1", 1))
        entry = RequestLog.from_request(request)

        assert entry.to_text() == "[::1]:1 GET /a b"
        assert entry.to_dict()["path"] == "/a b"


class TestMiddlewarePipeline:
    """Tests for ordering in the pipeline."""

    def test_first_added_is_outermost(self, make_request):
        events = []
        pipeline = MiddlewarePipeline()
        pipeline.add(Recorder("a", events)).add(Recorder("b", events))

        pipeline.wrap(ok_handler)(make_request("/"))

        assert events == ["a:in", "b:in", "b:out", "a:out"]
        assert len(pipeline) == 2
        assert [m.name for m in pipeline] == ["Recorder", "Recorder"]

    def test_empty_pipeline(self, make_request):
        handler = MiddlewarePipeline().wrap(ok_handler)
        assert handler(make_request("/")).body == b"ok"
