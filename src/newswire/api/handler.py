"""Lambda-style request handler exposing the cycling engine as JSON envelopes."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from newswire.wire.engine import CyclingEngine

logger = logging.getLogger(__name__)

CORS_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Max-Age": "86400",
}


@dataclass(slots=True)
class ApiResponse:
    """Status code and JSON body before envelope encoding."""

    status_code: int
    body: object
    headers: dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))

    def to_envelope(self) -> dict[str, object]:
        return {
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "body": json.dumps(self.body, ensure_ascii=False),
        }


class BadRequestError(ValueError):
    """Request body failed validation."""


class WireApiHandler:
    """Routes wire API events to the engine and always answers with a CORS envelope."""

    def __init__(self, engine: CyclingEngine, *, mode: str = "cycling", base_path: str = "") -> None:
        self.engine = engine
        self.mode = mode
        self.base_path = _normalize_path(base_path)

    def handle(self, event: Mapping[str, object]) -> dict[str, object]:
        return self.dispatch(event).to_envelope()

    def dispatch(self, event: Mapping[str, object]) -> ApiResponse:
        raw_method = event.get("httpMethod")
        raw_path = event.get("path")
        try:
            if not raw_method and not raw_path:
                logger.info("Direct invocation; listing valid articles.")
                return self._list_articles()

            method = str(raw_method or "GET").upper()
            if method == "OPTIONS":
                return ApiResponse(200, {})

            path = self._route_path(str(raw_path or "/"))
            logger.debug("Processing %s %s.", method, path)
            return self._route(method, path, event.get("body"))
        except BadRequestError as error:
            return ApiResponse(400, {"error": "Bad Request", "detail": str(error)})
        except Exception:
            logger.exception("Error processing %s %s.", raw_method, raw_path)
            return ApiResponse(500, {"error": "Internal Server Error"})

    def _route(self, method: str, path: str, body: object) -> ApiResponse:
        if method == "GET":
            if path == "/health":
                return ApiResponse(200, {"status": "ok"})
            if path == "/":
                if self.mode == "simple":
                    return self._list_articles()
                return ApiResponse(200, self.engine.advance().to_payload())
            if path == "/current":
                return ApiResponse(200, self.engine.current().to_payload())
            if path == "/cycle-articles":
                return ApiResponse(200, self.engine.cycle_articles().to_payload())
        elif method == "POST":
            if path == "/cycle":
                return ApiResponse(200, self.engine.advance().to_payload())
            if path == "/consumed":
                index = _parse_consumed_index(body)
                record = self.engine.acknowledge(index)
                return ApiResponse(
                    200,
                    {
                        "lastConsumedIndex": record.last_consumed_index,
                        "timestamp": record.timestamp,
                    },
                )
            if path == "/reset":
                cursor = self.engine.reset()
                return ApiResponse(
                    200,
                    {
                        "message": "Cycle reset",
                        "currentIndex": cursor.current_index,
                        "cycleCount": cursor.cycle_count,
                    },
                )
        return ApiResponse(404, {"error": "Not Found"})

    def _list_articles(self) -> ApiResponse:
        return ApiResponse(
            200,
            [article.to_payload() for article in self.engine.list_valid_articles()],
        )

    def _route_path(self, raw_path: str) -> str:
        path = _normalize_path(raw_path)
        if self.base_path != "/" and (
            path == self.base_path or path.startswith(f"{self.base_path}/")
        ):
            path = path[len(self.base_path) :] or "/"
        return path


def _normalize_path(value: str) -> str:
    path = "/" + value.strip().strip("/")
    return path


def _parse_consumed_index(body: object) -> int:
    payload = body
    if isinstance(body, (bytes, bytearray)):
        payload = body.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        if not payload.strip():
            raise BadRequestError("Request body with an index is required")
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as error:
            raise BadRequestError("Request body must be JSON") from error
    if not isinstance(payload, Mapping):
        raise BadRequestError("Request body must be a JSON object")
    index = payload.get("index")
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise BadRequestError(f"index must be a non-negative integer, got {index!r}")
    return index
