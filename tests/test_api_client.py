"""Tests for the async wire API client and payload normalization."""

from __future__ import annotations

import asyncio
import json

import allure
import httpx
import pytest

from newswire.client.api_client import WireApiClient, WireApiError, normalize_payload

pytestmark = [
    allure.epic("Sync Client"),
    allure.feature("API Client"),
]

ARTICLE = {
    "message_id": "A",
    "link": "https://example.com/a",
    "title": "Rates hold",
    "location": "LONDON",
    "publishTimestamp": 1_760_000_001_000,
    "publishedAt": "08:53:21.000",
    "cycleIndex": 0,
    "isCurrent": True,
}
METADATA = {
    "currentIndex": 0,
    "cycleCount": 2,
    "isNewCycle": False,
    "totalArticles": 3,
    "currentArticle": "A",
}


def _run(coro):
    return asyncio.run(coro)


class TestNormalizePayload:
    def test_engine_result_shape(self):
        payload = normalize_payload(
            {"article": ARTICLE, "metadata": METADATA, "cycleArticles": [ARTICLE]},
        )
        assert payload.article is not None
        assert payload.article.message_id == "A"
        assert payload.article.published_at == "08:53:21.000"
        assert payload.metadata is not None
        assert payload.metadata.cycle_count == 2
        assert [item.message_id for item in payload.articles] == ["A"]

    def test_current_article_is_added_when_missing_from_list(self):
        payload = normalize_payload({"article": ARTICLE, "metadata": METADATA})
        assert [item.message_id for item in payload.articles] == ["A"]

    def test_envelope_with_string_body_is_unwrapped(self):
        envelope = {
            "statusCode": 200,
            "headers": {},
            "body": json.dumps({"article": ARTICLE, "metadata": METADATA}),
        }
        payload = normalize_payload(envelope)
        assert payload.article is not None
        assert payload.metadata is not None

    def test_bare_list_and_items_wrapper(self):
        listed = normalize_payload([ARTICLE, {**ARTICLE, "message_id": "B", "isCurrent": False}])
        assert [item.message_id for item in listed.articles] == ["A", "B"]
        assert listed.article is not None
        assert listed.article.message_id == "A"

        items = normalize_payload({"Items": [{**ARTICLE, "isCurrent": False}]})
        assert items.article is None
        assert len(items.articles) == 1
        assert not items.is_empty

    def test_malformed_entries_are_skipped(self):
        payload = normalize_payload({"articles": [{"link": "https://x.test"}, "junk", ARTICLE]})
        assert [item.message_id for item in payload.articles] == ["A"]

    @pytest.mark.parametrize("data", [None, 42, "text", {}, {"message": "No articles available"}])
    def test_unknown_shapes_are_empty(self, data):
        assert normalize_payload(data).is_empty

    def test_extra_fields_survive(self):
        payload = normalize_payload({"article": {**ARTICLE, "category": "markets"}})
        assert payload.article is not None
        assert payload.article.extra == {"category": "markets"}


class TestWireApiClient:
    def test_endpoints_and_methods(self):
        calls: list[tuple[str, str, bytes]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path, request.content))
            if request.url.path == "/health":
                return httpx.Response(200, json={"status": "ok"})
            if request.url.path == "/consumed":
                return httpx.Response(200, json={"lastConsumedIndex": 1, "timestamp": 5})
            if request.url.path == "/reset":
                return httpx.Response(200, json={"message": "Cycle reset"})
            return httpx.Response(200, json={"article": ARTICLE, "metadata": METADATA})

        async def scenario():
            async with WireApiClient(
                "http://wire.test/",
                transport=httpx.MockTransport(handler),
            ) as client:
                advanced = await client.advance()
                await client.cycle_step()
                await client.current()
                await client.cycle_articles()
                await client.acknowledge(1)
                await client.reset()
                healthy = await client.health()
            return advanced, healthy

        advanced, healthy = _run(scenario())

        assert advanced.article is not None
        assert healthy is True
        assert [(method, path) for method, path, _ in calls] == [
            ("GET", "/"),
            ("POST", "/cycle"),
            ("GET", "/current"),
            ("GET", "/cycle-articles"),
            ("POST", "/consumed"),
            ("POST", "/reset"),
            ("GET", "/health"),
        ]
        assert json.loads(calls[4][2]) == {"index": 1}

    def test_http_error_status_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))

        async def scenario():
            async with WireApiClient("http://wire.test", transport=transport) as client:
                await client.advance()

        with pytest.raises(WireApiError) as excinfo:
            _run(scenario())
        assert excinfo.value.code == "http_status"
        assert excinfo.value.status_code == 503

    def test_transport_errors_are_wrapped(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        async def scenario(handler):
            async with WireApiClient(
                "http://wire.test",
                transport=httpx.MockTransport(handler),
            ) as client:
                await client.advance()

        with pytest.raises(WireApiError) as refused:
            _run(scenario(refuse))
        assert refused.value.code == "transport"

        with pytest.raises(WireApiError) as timed_out:
            _run(scenario(slow))
        assert timed_out.value.code == "timeout"

    def test_non_json_body_is_empty_payload(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))

        async def scenario():
            async with WireApiClient("http://wire.test", transport=transport) as client:
                return await client.advance()

        assert _run(scenario()).is_empty
