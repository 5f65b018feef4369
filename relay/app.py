"""FastAPI application for the relay."""
from __future__ import annotations

import logging
import secrets
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay.config import RelaySettings, get_relay_settings
from relay.db import create_relay_engine, init_relay_db, session_factory_for
from relay.routes import sync_router, tasks_router
from relay.store import DuplicateTaskError, RelayStore, RelayStoreError


logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def cors_headers(origin: str) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": f"Content-Type, {API_KEY_HEADER}",
    }


def error_response(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _key_matches(provided: Optional[str], expected: str) -> bool:
    if provided is None:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def create_app(
    settings: Optional[RelaySettings] = None,
    store: Optional[RelayStore] = None,
) -> FastAPI:
    settings = settings or get_relay_settings()
    if store is None:
        engine = create_relay_engine(settings.database_url)
        init_relay_db(engine)
        store = RelayStore(session_factory_for(engine))

    app = FastAPI(
        title="Taskbox relay",
        version="0.1.0",
        debug=settings.debug,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.store = store

    origin = settings.cors_origin or "*"

    @app.middleware("http")
    async def relay_gate(request: Request, call_next):
        headers = cors_headers(origin)
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)

        if not _key_matches(request.headers.get(API_KEY_HEADER), settings.api_key):
            response = error_response("Unauthorized", 401)
        else:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("Unhandled error on %s %s", request.method, request.url.path)
                response = error_response("Internal server error", 500)

        response.headers.update(headers)
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        # Unknown paths and unsupported methods look the same to clients.
        if exc.status_code in (404, 405):
            return error_response("Not found", 404)
        return error_response(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        detail = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return error_response("Invalid request body", 422, detail=detail)

    @app.exception_handler(DuplicateTaskError)
    async def duplicate_task(request: Request, exc: DuplicateTaskError):
        return error_response("Task already exists", 409, id=exc.task_id)

    @app.exception_handler(RelayStoreError)
    async def store_error(request: Request, exc: RelayStoreError):
        logger.error("Relay store error: %s", exc)
        return error_response("Internal server error", 500)

    app.include_router(tasks_router)
    app.include_router(sync_router)

    return app


__all__ = ["API_KEY_HEADER", "cors_headers", "create_app"]
