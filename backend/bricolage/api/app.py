"""
FastAPI application for the booking lifecycle API.

`app` is the ASGI entry point (`uvicorn bricolage.api.app:app`).
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bricolage.api.routes import bookings, quotes, reviews, admin_bookings, notifications
from bricolage.api.middleware import register_error_handlers
from bricolage.lib.logging import get_logger, set_correlation_id
from bricolage.lib.metrics import get_metrics_collector
from bricolage.lib.settings import settings

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with a correlation id.

    The id comes from the X-Correlation-ID header or is generated, is echoed
    back on the response, and is attached to every log record and error body
    produced while handling the request.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        started = time.perf_counter()
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(f"{settings.app_name} starting up", extra={"currency": settings.currency})
    yield
    logger.info(f"{settings.app_name} shutting down")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        description="Booking lifecycle APIs for clients, technicians and administrators",
        lifespan=lifespan,
    )

    # Web and mobile front-ends during development, plus the deployed front-end
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(CorrelationIdMiddleware)

    register_error_handlers(application)

    for module in (bookings, quotes, reviews, admin_bookings, notifications):
        application.include_router(module.router)

    @application.get("/health")
    def health_check():
        return {"status": "ok"}

    @application.get("/metrics", include_in_schema=False)
    def metrics_endpoint():
        """
        Prometheus text exposition of the booking counters:

        - booking_transitions_total{from_status, to_status, role}
        - booking_rejections_total{operation, code}
        - notifications_total{event_type, status}
        - payment_overrides_total{new_payment_status}
        """
        return PlainTextResponse(
            content=get_metrics_collector().export_prometheus(),
            media_type=PROMETHEUS_CONTENT_TYPE,
        )

    return application


app = create_app()
