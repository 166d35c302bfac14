"""FastAPI application factory"""

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import Response

from wallet_guard.api.dependencies import to_http_exception
from wallet_guard.api.middleware import RequestIDMiddleware, MetricsMiddleware
from wallet_guard.api.v1 import accounts, alerts, wallet
from wallet_guard.config import settings
from wallet_guard.domain.exceptions import DomainException, TransactionTimeoutError
from wallet_guard.infrastructure.database.session import get_db
from wallet_guard.infrastructure.observability.logging import setup_logging

setup_logging(settings.log_level)


async def domain_error_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Domain errors that escape a router still get their status code and stable code"""
    http_exc = to_http_exception(exc)
    headers = {"Retry-After": "1"} if isinstance(exc, TransactionTimeoutError) else None
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail}, headers=headers)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Wallet Guard",
        description="Wallet ledger with atomic transfers, fraud screening and alert review",
        version="0.1.0",
    )

    # Last added runs first: request ids exist before metrics log them
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_exception_handler(DomainException, domain_error_handler)

    @app.get("/health")
    def health_check(db: Session = Depends(get_db)):
        """Liveness plus a round trip to the ledger database"""
        try:
            db.execute(text("SELECT 1"))
            database = "ok"
        except SQLAlchemyError:
            database = "unavailable"
        finally:
            db.rollback()

        body = {"status": "ok" if database == "ok" else "degraded", "service": settings.service_name, "database": database}
        return JSONResponse(status_code=200 if database == "ok" else 503, content=body)

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(wallet.router, prefix="/v1", tags=["wallet"])
    app.include_router(alerts.router, prefix="/v1", tags=["alerts"])

    return app


app = create_app()
