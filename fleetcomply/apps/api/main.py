from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from fleetcomply.apps.api.errors import (
    authorization_exception_handler,
    database_exception_handler,
    delegation_exception_handler,
    http_exception_handler,
    owner_predicate_exception_handler,
    starlette_http_exception_handler,
    subscription_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fleetcomply.apps.api.response import API_VERSION, REQUEST_ID_HEADER, get_request_id
from fleetcomply.apps.api.routes.clients import router as clients_router
from fleetcomply.apps.api.routes.health import router as health_router
from fleetcomply.apps.api.routes.renewals import router as renewals_router
from fleetcomply.apps.api.routes.subscriptions import router as subscriptions_router
from fleetcomply.core.config import get_settings
from fleetcomply.core.errors import AuthorizationError, DelegationError, SubscriptionError
from fleetcomply.core.logging import configure_logging
from fleetcomply.persistence.db import SessionLocal
from fleetcomply.persistence.guards import OwnerPredicateError
from fleetcomply.services.reconciliation import ReconciliationScheduler


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run the daily reconciliation loop in-process only when enabled; one instance per deployment.
    task: asyncio.Task | None = None
    if get_settings().reconcile_enabled:
        task = asyncio.create_task(app.state.reconciler.run_forever())
        logger.info("renewal_reconciler_started")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
            logger.info("renewal_reconciler_stopped")


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="FleetComply API", version=API_VERSION, lifespan=lifespan)
    # The scheduler is built once here and owns its running flag.
    app.state.reconciler = ReconciliationScheduler(SessionLocal)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = get_request_id(request)
        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(AuthorizationError)
    async def _authorization_exception_handler(request: Request, exc: AuthorizationError):
        return await authorization_exception_handler(request, exc)

    @app.exception_handler(DelegationError)
    async def _delegation_exception_handler(request: Request, exc: DelegationError):
        return await delegation_exception_handler(request, exc)

    @app.exception_handler(SubscriptionError)
    async def _subscription_exception_handler(request: Request, exc: SubscriptionError):
        return await subscription_exception_handler(request, exc)

    @app.exception_handler(OwnerPredicateError)
    async def _owner_predicate_exception_handler(request: Request, exc: OwnerPredicateError):
        return await owner_predicate_exception_handler(request, exc)

    @app.exception_handler(SQLAlchemyError)
    async def _database_exception_handler(request: Request, exc: SQLAlchemyError):
        return await database_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(clients_router, prefix=f"/{API_VERSION}")
    app.include_router(renewals_router, prefix=f"/{API_VERSION}")
    app.include_router(subscriptions_router, prefix=f"/{API_VERSION}")

    return app


app = create_app()
