import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from arpguard.config import settings
from arpguard.dependencies import get_detector
from arpguard.errors import ARPGuardError, ConfigurationError, InvalidStateTransition
from arpguard.routers import (
    anomalies_router,
    arp_router,
    export_router,
    monitor_router,
    trust_router,
)
from arpguard.services.detector import ARPDetector, build_detector
from arpguard.services.health import run_health_checks
from arpguard.utils.audit import set_request_id
from arpguard.utils.logging_utils import get_logger, setup_logging

setup_logging(level=settings.LOG_LEVEL)
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Engine errors surfaced through the API; anything else is a 500
ERROR_STATUS = {
    ConfigurationError: status.HTTP_400_BAD_REQUEST,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the detector on startup and stop its worker on shutdown."""
    logger.info("=" * 60)
    logger.info(f"{settings.APP_NAME.upper()} v{settings.APP_VERSION} STARTING UP")

    start = time.perf_counter()
    detector = build_detector(settings)
    app.state.detector = detector
    logger.info(
        f"Detector ready in {(time.perf_counter() - start) * 1000:.1f}ms "
        f"(gateway={detector.gateway_ip() or 'unknown'}, interval={detector.check_interval}s)"
    )

    health = run_health_checks(detector)
    for check in health.checks:
        marker = "+" if check.status == "ok" else "!"
        logger.info(f"  {marker} {check.name}: {check.status}" + (f" ({check.message})" if check.message else ""))
    if health.status != "healthy":
        logger.warning(f"STARTUP HEALTH: {health.status.upper()}")

    if settings.AUTO_START_MONITORING:
        detector.start()

    logger.info("=" * 60)

    yield

    if detector.is_monitoring:
        detector.stop()
    logger.info(f"{settings.APP_NAME} shut down")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)


# ── Error responses ──────────────────────────────────────────────────

def _field_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic errors into {field, message, type} items."""
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        message = error.get("msg", "Validation error")
        # Strip pydantic's prefix from ValueErrors raised in our validators
        message = message.removeprefix("Value error, ")
        formatted.append({
            "field": ".".join(loc) or "unknown",
            "message": message,
            "type": error.get("type", "unknown"),
        })
    return formatted


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation failed", "errors": _field_errors(exc.errors())},
    )


@app.exception_handler(ARPGuardError)
async def engine_error_handler(request: Request, exc: ARPGuardError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# ── Request tracking ─────────────────────────────────────────────────

@app.middleware("http")
async def request_lifecycle(request: Request, call_next):
    """Tag the request with an ID (reusing the caller's) so audit entries can be correlated."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    set_request_id(request_id)

    start_time = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        f"{request.method} {request.url.path} [{response.status_code}] "
        f"{duration_ms:.1f}ms rid={request_id[:8]}"
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

for router in (monitor_router, arp_router, anomalies_router, trust_router, export_router):
    app.include_router(router)


@app.get("/health", tags=["health"])
def health_check(detector: ARPDetector = Depends(get_detector)):
    """Component health; 503 only when the monitor or its data source is broken."""
    health = run_health_checks(detector)
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if health.status == "unhealthy" else status.HTTP_200_OK
    return JSONResponse(content=health.model_dump(), status_code=status_code)


@app.get("/api", tags=["root"])
async def api_root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "endpoints": {
            "monitor": "/api/monitor",
            "arp": "/api/arp",
            "anomalies": "/api/anomalies",
            "trust": "/api/trust",
            "export": "/api/export",
            "health": "/health",
        },
    }


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run("arpguard.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)


if __name__ == "__main__":
    run()
