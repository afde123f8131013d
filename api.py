"""
api.py - FastAPI HTTP layer for the treatment amounts service.

Endpoints:
  - GET/HEAD /v1/                 liveness, always {"status": "running"}
  - GET      /v1/customer/{id}    per-status treatment totals
  - OPTIONS  /v1/customer/{id}    CORS preflight

No lookup/aggregation logic lives here; handlers call lookup.py and
amounts.py and map their outcomes onto the JSON envelope.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Optional, Union

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from amounts import aggregate_amounts
from customer_store import StorageError, build_customer_store
from logging_config import get_logger, setup_logging
from lookup import lookup_customer
from models import FailEnvelope, NotFoundDetail, ServiceStatus, SuccessEnvelope
from settings import Settings, load_settings

logger = get_logger("amounts-api")

CORS_ALLOWED_HEADERS = ["X-Requested-With", "Authorization", "Origin", "Content-Type"]
CORS_ALLOWED_METHODS = ["GET", "HEAD", "POST", "OPTIONS"]

router = APIRouter(prefix="/v1")


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose preflight answers carry the CORS headers and no body."""

    def preflight_response(self, request_headers) -> Response:
        response = super().preflight_response(request_headers)
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in {"content-length", "content-type"}
        }
        return Response(status_code=response.status_code, headers=headers)


def get_store(request: Request):
    """Dependency: the store the application was built or started with."""
    store = request.app.state.store
    if store is None:
        raise RuntimeError("Customer store is not initialized.")
    return store


def _fail(status_code: int, data: Union[str, NotFoundDetail]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=FailEnvelope(data=data).model_dump(mode="json"),
    )


@router.api_route("/", methods=["GET", "HEAD"])
def root() -> dict[str, str]:
    """Liveness check; does not touch the store."""
    return ServiceStatus().model_dump()


@router.get("/customer/{customer_id}")
def customer_amounts(customer_id: str, store: Any = Depends(get_store)) -> JSONResponse:
    """Look up the customer, then total their treatments by status."""
    try:
        customer = lookup_customer(store, customer_id)
    except StorageError as exc:
        return _fail(500, f"Error fetching customer: {exc}")
    except Exception as exc:
        logger.error(
            "api_lookup_error | id=%s | error_type=%s | error=%s",
            customer_id,
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        return _fail(500, f"Error fetching customer: {exc}")

    if customer is None:
        return _fail(404, NotFoundDetail(title=f'Customer "{customer_id}" not found'))

    try:
        amounts = aggregate_amounts(store, customer)
    except StorageError as exc:
        return _fail(500, f"Unable to fetch amounts: {exc}")
    except Exception as exc:
        logger.error(
            "api_amounts_error | id=%s | error_type=%s | error=%s",
            customer_id,
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        return _fail(500, f"Unable to fetch amounts: {exc}")

    return JSONResponse(content=SuccessEnvelope(data=amounts).model_dump(mode="json"))


@router.options("/customer/{customer_id}")
def customer_preflight(customer_id: str) -> Response:
    """Bare OPTIONS without CORS request headers; real preflights are answered by the middleware."""
    return Response(status_code=200)


def create_app(store: Any = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the application.

    Pass a store to inject it (tests, CLI seed mode). Otherwise one is built
    from settings at startup and closed at shutdown.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_store = app.state.store is None
        if owns_store:
            app.state.store = build_customer_store(settings)
        logger.info(
            "api_startup | store=%s | project_id=%s | port=%s",
            type(app.state.store).__name__,
            settings.project_id,
            settings.port,
        )
        try:
            yield
        finally:
            if owns_store:
                app.state.store.close()
                app.state.store = None
            logger.info("api_shutdown")

    app = FastAPI(
        title="Treatment Amounts API",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.store = store

    app.add_middleware(
        EmptyPreflightCORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=CORS_ALLOWED_METHODS,
        allow_headers=CORS_ALLOWED_HEADERS,
    )
    app.include_router(router)
    return app


if __name__ == "__main__":
    current = load_settings()
    setup_logging(level=current.log_level, json_format=current.log_json)
    logger.info("Treatment amounts API listening on port %s", current.port)
    uvicorn.run("api:create_app", factory=True, host="0.0.0.0", port=current.port, reload=False)
