"""
Observability helpers.

Logging setup for the station process and a middleware that adds
correlation IDs and structured logging context to requests.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Root of the station logger hierarchy
logger = logging.getLogger("station_node")
http_logger = logging.getLogger("station_node.http")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the station logger."""
    logger.setLevel(level.upper())
    if not any(getattr(h, "_station_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._station_handler = True
        logger.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        station_id = getattr(request.app.state, "ctx", None) and request.app.state.ctx.station_id

        # 1. Generate or extract Correlation ID
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # 2. Start Timer
        start_time = time.perf_counter()

        # 3. Process Request
        response = await call_next(request)

        # 4. Calculate Duration
        process_time = (time.perf_counter() - start_time) * 1000  # ms

        # 5. Add Header to Response
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{process_time:.2f}"

        # 6. Structured Log
        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(process_time, 2),
            "ip": request.client.host if request.client else "unknown",
            "station_id": station_id,
        }

        # Log level based on status
        if response.status_code >= 500:
            http_logger.error("%s %s failed with %s", request.method, request.url.path, response.status_code, extra=log_data)
        elif response.status_code >= 400:
            http_logger.warning("%s %s returned %s", request.method, request.url.path, response.status_code, extra=log_data)
        else:
            http_logger.info("%s %s %s in %.2fms", request.method, request.url.path, response.status_code, process_time, extra=log_data)

        return response
