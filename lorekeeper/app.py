"""
FastAPI application entry point for lorekeeper.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lorekeeper.config import get_settings
from lorekeeper.errors import HTTP_STATUS_CODES, Status, StoreError
from lorekeeper.routes import router

logger = logging.getLogger(__name__)


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    return JSONResponse(status_code=HTTP_STATUS_CODES[exc.status], content=exc.as_dict())


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {field} {first.get('msg', '')}".strip()
    return JSONResponse(
        status_code=HTTP_STATUS_CODES[Status.BAD_REQUEST],
        content={"status": Status.BAD_REQUEST.value, "error": message},
    )


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=HTTP_STATUS_CODES[Status.INTERNAL_ERROR],
        content={"status": Status.INTERNAL_ERROR.value, "error": "Internal server error"},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    if not settings.bearer_token:
        logger.warning("BEARER_TOKEN is not set; API routes are unauthenticated")

    app = FastAPI(title="Lorekeeper", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    @app.get("/health")
    def health():
        return {"status": Status.OK.value}

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
