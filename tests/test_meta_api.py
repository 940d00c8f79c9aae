"""
Tests for the Meta API client: pagination, retry and error classification.
"""
import asyncio

import httpx
import pytest

from adsync.services.meta.errors import ErrorKind, MetaAPIError, classify_error
from tests.conftest import BASE_URL, TOKEN, error_body


def page(items, next_url=None):
    body = {"data": items}
    if next_url:
        body["paging"] = {"cursors": {"after": "x"}, "next": next_url}
    return body


class TestClassifyError:
    """Upstream codes and wording map to one ErrorKind"""

    @pytest.mark.parametrize("code", [4, 17, 32, 613])
    def test_rate_limit_codes(self, code):
        assert classify_error(code, "User request limit reached") == ErrorKind.RATE_LIMIT

    @pytest.mark.parametrize("code", [2, 99])
    def test_transient_codes(self, code):
        assert classify_error(code, "Service unavailable") == ErrorKind.TRANSIENT

    def test_temporarily_wording_is_transient(self):
        assert classify_error(190, "Service temporarily unavailable") == ErrorKind.TRANSIENT

    def test_reduce_data_wording_is_payload_too_large(self):
        message = "Please reduce the amount of data you're asking for, then retry your request"
        assert classify_error(100, message) == ErrorKind.PAYLOAD_TOO_LARGE

    def test_opaque_unknown_error_is_payload_too_large(self):
        assert classify_error(1, "An unknown error occurred") == ErrorKind.PAYLOAD_TOO_LARGE

    def test_other_codes_are_permanent(self):
        assert classify_error(100, "Invalid parameter") == ErrorKind.PERMANENT
        assert classify_error(190, "Invalid OAuth access token") == ErrorKind.PERMANENT

    def test_http_status_without_envelope(self):
        assert classify_error(None, "HTTP 429", status_code=429) == ErrorKind.RATE_LIMIT
        assert classify_error(None, "HTTP 503", status_code=503) == ErrorKind.TRANSIENT
        assert classify_error(None, "HTTP 404", status_code=404) == ErrorKind.PERMANENT

    def test_retryable_kinds(self):
        assert MetaAPIError("x", code=17).retryable
        assert MetaAPIError("x", kind=ErrorKind.TIMEOUT).retryable
        assert MetaAPIError("x", kind=ErrorKind.NETWORK).retryable
        assert not MetaAPIError("x", code=100).retryable
        assert not MetaAPIError("x", code=1).retryable


class TestPagination:
    """Cursor pagination follows paging.next until absent"""

    def test_three_pages_concatenated_in_order(self, api, graph, sleeps):
        pages = [
            page([{"id": str(i)} for i in range(0, 10)], f"{BASE_URL}/act_1/campaigns?after=p2"),
            page([{"id": str(i)} for i in range(10, 20)], f"{BASE_URL}/act_1/campaigns?after=p3"),
            page([{"id": str(i)} for i in range(20, 30)]),
        ]
        graph.add("act_1/campaigns", *pages)

        rows = asyncio.run(api.get_all("act_1/campaigns", fields="id,name", limit=10))

        assert [r["id"] for r in rows] == [str(i) for i in range(30)]
        assert len(graph.requests) == 3
        # Throttle before every page, including the first
        assert sleeps.calls == [1, 1, 1]

    def test_next_url_is_followed_verbatim(self, api, graph):
        graph.add(
            "act_1/ads",
            page([{"id": "1"}], f"{BASE_URL}/act_1/ads?after=abc&access_token={TOKEN}"),
            page([{"id": "2"}]),
        )

        asyncio.run(api.get_all("act_1/ads", fields="id"))

        first, second = graph.requests
        assert graph.params_of(first)["fields"] == "id"
        assert graph.params_of(first)["access_token"] == TOKEN
        assert graph.params_of(second) == {"after": "abc", "access_token": TOKEN}

    def test_empty_page_without_data(self, api, graph):
        graph.add("act_1/adsets", {})
        assert asyncio.run(api.get_all("act_1/adsets")) == []


class TestRetry:
    """Retryable failures back off on the fixed schedule"""

    def test_rate_limited_twice_then_success(self, api, graph, sleeps):
        graph.add(
            "act_1/insights",
            httpx.Response(400, json=error_body("User request limit reached", 17)),
            httpx.Response(400, json=error_body("User request limit reached", 17)),
            page([{"date_start": "2026-01-01"}]),
        )

        rows = asyncio.run(api.get_all("act_1/insights"))

        assert len(rows) == 1
        # page throttle, then the two backoff delays
        assert sleeps.calls == [1, 15, 30]

    def test_envelope_on_http_200_is_an_error(self, api, graph):
        graph.add("act_1", error_body("Invalid parameter", 100))

        with pytest.raises(MetaAPIError) as exc:
            asyncio.run(api.get("act_1"))

        assert exc.value.code == 100
        assert exc.value.kind == ErrorKind.PERMANENT

    def test_permanent_error_is_not_retried(self, api, graph, sleeps):
        graph.add("act_1/campaigns", httpx.Response(400, json=error_body("Invalid OAuth access token", 190)))

        with pytest.raises(MetaAPIError):
            asyncio.run(api.get_all("act_1/campaigns"))

        assert len(graph.requests) == 1
        assert sleeps.calls == [1]

    def test_retries_exhausted_raises_last_error(self, api, graph, sleeps):
        graph.add("act_1", httpx.Response(400, json=error_body("Service unavailable", 2)))

        with pytest.raises(MetaAPIError) as exc:
            asyncio.run(api.get("act_1"))

        assert exc.value.kind == ErrorKind.TRANSIENT
        assert len(graph.requests) == 5
        assert sleeps.calls == [15, 30, 60, 120]

    def test_timeout_is_retried(self, api, graph, sleeps):
        graph.add("act_1", httpx.ReadTimeout("timed out"), {"id": "act_1"})

        assert asyncio.run(api.get("act_1")) == {"id": "act_1"}
        assert sleeps.calls == [15]

    def test_network_error_is_classified(self, api, graph):
        api.retry_delays = []
        graph.add("act_1", httpx.ConnectError("connection refused"))

        with pytest.raises(MetaAPIError) as exc:
            asyncio.run(api.get("act_1"))

        assert exc.value.kind == ErrorKind.NETWORK

    def test_non_json_body_is_permanent(self, api, graph, sleeps):
        graph.add("act_1", httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(MetaAPIError) as exc:
            asyncio.run(api.get("act_1"))

        assert exc.value.kind == ErrorKind.PERMANENT
        assert sleeps.calls == []

    def test_http_503_without_envelope_is_transient(self, api, graph, sleeps):
        graph.add("act_1", httpx.Response(503, content=b"Service Unavailable"), {"id": "act_1"})

        assert asyncio.run(api.get("act_1")) == {"id": "act_1"}
        assert sleeps.calls == [15]

    def test_error_message_does_not_contain_token(self, api, graph):
        api.retry_delays = []
        graph.add("act_1", httpx.ConnectError("connection refused"))

        with pytest.raises(MetaAPIError) as exc:
            asyncio.run(api.get("act_1"))

        assert TOKEN not in str(exc.value)
