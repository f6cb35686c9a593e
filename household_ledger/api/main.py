"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from household_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from household_ledger.api.v1 import accounts, credit_cards, loans, transactions
from household_ledger.domain.exceptions import (
    ConflictError,
    DomainException,
    InsufficientFundsError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from household_ledger.infrastructure.observability.logging import setup_logging
from household_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)

# Most specific first: subclasses inherit their parent's status
ERROR_STATUS = [
    (NotFoundError, 404),
    (ValidationError, 422),
    (LimitExceededError, 400),
    (InsufficientFundsError, 400),
    (ConflictError, 409),
]


def status_for(exc: DomainException) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Map domain errors to HTTP responses; the unit of work has already rolled back"""
    status_code = status_for(exc)
    logging.warning(
        f"{type(exc).__name__}: {exc}",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "status": status_code},
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Household Ledger",
        description="Ledger, loan amortization and credit card billing engine",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(credit_cards.router, prefix="/v1", tags=["credit-cards"])

    return app


app = create_app()
