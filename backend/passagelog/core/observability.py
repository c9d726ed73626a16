from __future__ import annotations

import logging
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from passagelog.core.config import Settings

request_logger = logging.getLogger("passagelog.request")
error_logger = logging.getLogger("passagelog.error")

# Position reports arrive about once a second.
QUIET_PATHS = frozenset({"/positions", "/status", "/health"})


def _elapsed_ms(start: float) -> float:
    return round((perf_counter() - start) * 1000, 2)


def request_log_level(path: str) -> int:
    return logging.DEBUG if path in QUIET_PATHS else logging.INFO


def _init_sentry(settings: Settings) -> None:
    if not settings.SENTRY_DSN:
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
    except ImportError:
        error_logger.warning(
            "SENTRY_DSN is set but sentry-sdk is missing; install the sentry extra"
        )
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[FastApiIntegration()],
    )
    request_logger.info(
        "Sentry initialized",
        extra={"sentry_traces_sample_rate": settings.SENTRY_TRACES_SAMPLE_RATE},
    )


def setup_observability(app: FastAPI, settings: Settings) -> None:
    _init_sentry(settings)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid4())
        start = perf_counter()
        fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception:
            error_logger.exception(
                "Unhandled request exception",
                extra={**fields, "duration_ms": _elapsed_ms(start)},
            )
            response = JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "request_id": request_id},
            )

        request_logger.log(
            request_log_level(request.url.path),
            "Request completed",
            extra={**fields, "status_code": response.status_code, "duration_ms": _elapsed_ms(start)},
        )
        response.headers["X-Request-ID"] = request_id
        return response
