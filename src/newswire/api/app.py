"""FastAPI adapter that serves the wire API handler over HTTP."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from starlette.concurrency import run_in_threadpool

from newswire import __version__
from newswire.api.handler import WireApiHandler
from newswire.config import Settings
from newswire.storage.repository import SQLiteRepository
from newswire.wire.engine import CyclingEngine
from newswire.wire.source import StoreArticleSource

logger = logging.getLogger(__name__)

_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(
    handler: WireApiHandler,
    *,
    on_shutdown: list[Callable[[], None]] | None = None,
) -> FastAPI:
    """Wrap a handler in a catch-all ASGI app; every route answers with its envelope."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting newswire API v%s (mode=%s).", __version__, handler.mode)
        yield
        for callback in on_shutdown or []:
            callback()
        logger.info("Shutting down newswire API.")

    app = FastAPI(title="newswire", version=__version__, lifespan=lifespan)

    @app.api_route("/{path:path}", methods=_METHODS)
    async def wire_endpoint(request: Request) -> Response:
        body = await request.body()
        event = {
            "httpMethod": request.method,
            "path": request.url.path,
            "body": body.decode("utf-8", errors="replace") if body else None,
        }
        envelope = await run_in_threadpool(handler.handle, event)
        return Response(
            content=str(envelope["body"]),
            status_code=int(envelope["statusCode"]),  # type: ignore[call-overload]
            headers=dict(envelope["headers"]),  # type: ignore[call-overload]
        )

    return app


def build_app(settings: Settings) -> FastAPI:
    """Wire repository, source and engine from settings into a served app."""

    settings.validate_for_engine()
    repository = SQLiteRepository(settings.db_path)
    repository.init_schema()
    engine = CyclingEngine(
        source=StoreArticleSource(repository),
        store=repository,
        settings=settings.engine,
    )
    handler = WireApiHandler(engine, mode=settings.api.mode, base_path=settings.api.base_path)
    return create_app(handler, on_shutdown=[repository.close])
