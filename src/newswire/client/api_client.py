"""Async HTTP client for the wire API with payload normalization."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

import httpx

from newswire.wire.models import Article, CycleMetadata

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(slots=True)
class WireApiError(Exception):
    """Transport failure or non-2xx answer from the wire API."""

    message: str
    code: str = "wire_api_error"
    status_code: int = 0

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class WirePayload:
    """Normalized engine answer: current article, metadata and cycle articles."""

    article: Article | None = None
    metadata: CycleMetadata | None = None
    articles: list[Article] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.article is None and not self.articles


class WireApiClient:
    """httpx wrapper around the wire API endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
            headers={"Accept": "application/json", "Cache-Control": "no-cache"},
            transport=transport,
        )

    async def advance(self) -> WirePayload:
        return normalize_payload(await self._request("GET", "/"))

    async def cycle_step(self) -> WirePayload:
        return normalize_payload(await self._request("POST", "/cycle"))

    async def current(self) -> WirePayload:
        return normalize_payload(await self._request("GET", "/current"))

    async def cycle_articles(self) -> WirePayload:
        return normalize_payload(await self._request("GET", "/cycle-articles"))

    async def acknowledge(self, index: int) -> None:
        await self._request("POST", "/consumed", json_body={"index": index})

    async def reset(self) -> None:
        await self._request("POST", "/reset")

    async def health(self) -> bool:
        data = await self._request("GET", "/health")
        return isinstance(data, Mapping) and data.get("status") == "ok"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Mapping[str, object] | None = None,
    ) -> object:
        try:
            response = await self._client.request(method, path, json=json_body)
        except httpx.TimeoutException as error:
            logger.warning("Timeout calling %s %s%s", method, self.base_url, path)
            raise WireApiError(message="timeout", code="timeout") from error
        except httpx.HTTPError as error:
            logger.warning("HTTP error calling %s %s%s: %s", method, self.base_url, path, error)
            raise WireApiError(message=str(error), code="transport") from error

        if not response.is_success:
            logger.warning(
                "Wire API answered %s %s with HTTP %d: %s",
                method,
                path,
                response.status_code,
                response.text[:200],
            )
            raise WireApiError(
                message=f"HTTP {response.status_code}",
                code="http_status",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except json.JSONDecodeError:
            logger.warning("Wire API returned non-JSON body for %s %s", method, path)
            return None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> WireApiClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


def normalize_payload(data: object) -> WirePayload:
    """Coerce any known response shape into a payload; unknown shapes become empty."""

    data = _unwrap_envelope(data)
    if isinstance(data, list):
        articles = _parse_articles(data)
        current = next((article for article in articles if article.is_current), None)
        return WirePayload(article=current, articles=articles)
    if not isinstance(data, Mapping):
        if data is not None:
            logger.warning("Unexpected wire payload type: %s", type(data).__name__)
        return WirePayload()

    raw_articles: object = None
    for key in ("cycleArticles", "articles", "Items"):
        if isinstance(data.get(key), list):
            raw_articles = data[key]
            break
    articles = _parse_articles(raw_articles if isinstance(raw_articles, list) else [])

    article = _parse_article(data.get("article"))
    if article is None:
        article = next((item for item in articles if item.is_current), None)
    elif not any(item.message_id == article.message_id for item in articles):
        articles.append(article)

    return WirePayload(
        article=article,
        metadata=_parse_metadata(data.get("metadata")),
        articles=articles,
    )


def _unwrap_envelope(data: object) -> object:
    # Gateways sometimes hand back the raw {statusCode, headers, body} envelope.
    if isinstance(data, Mapping) and "statusCode" in data and "body" in data:
        body = data.get("body")
        if isinstance(body, str):
            try:
                return json.loads(body)
            except json.JSONDecodeError:
                logger.warning("Envelope body is not JSON; treating payload as empty.")
                return None
        return body
    return data


def _parse_articles(items: list[object]) -> list[Article]:
    articles: list[Article] = []
    for item in items:
        article = _parse_article(item)
        if article is not None:
            articles.append(article)
    return articles


def _parse_article(item: object) -> Article | None:
    if not isinstance(item, Mapping):
        return None
    try:
        return Article.from_payload(item)
    except ValueError as error:
        logger.debug("Skipping malformed article payload: %s", error)
        return None


def _parse_metadata(raw: object) -> CycleMetadata | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        return CycleMetadata(
            current_index=int(raw.get("currentIndex", -1)),  # type: ignore[call-overload]
            cycle_count=int(raw.get("cycleCount", 0)),  # type: ignore[call-overload]
            is_new_cycle=raw.get("isNewCycle") is True,
            total_articles=int(raw.get("totalArticles", 0)),  # type: ignore[call-overload]
            current_article=(
                str(raw["currentArticle"]) if raw.get("currentArticle") is not None else None
            ),
        )
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed metadata payload: %r", raw)
        return None
