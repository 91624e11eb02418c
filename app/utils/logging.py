import json
import logging
import sys
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

SERVICE_NAME = "cart-api"

# extra= fields copied into JSON records when present
_EXTRA_FIELDS = ("request_id", "user_id", "method", "path", "status_code", "duration_ms")


class JSONFormatter(logging.Formatter):
    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": self.service_name,
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "line": record.lineno,
        }
        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)
        if record.exc_info:
            log_obj["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(log_obj, default=str)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure the root logger once for the process.

    Handlers installed by a previous call (e.g. app reloads in tests) are
    replaced rather than stacked.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
    root.addHandler(handler)
    return logging.getLogger(SERVICE_NAME)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger(f"{SERVICE_NAME}.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, start, request_id, exc_info=sys.exc_info())
            raise

        self._log(request, response.status_code, start, request_id)
        response.headers["X-Request-ID"] = request_id
        return response

    def _log(self, request: Request, status_code: int, start: float, request_id: str, exc_info=None):
        extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            "user_id": getattr(request.state, "user_id", None),
        }
        msg = "%s %s -> %s (%.2f ms)"
        args = (extra["method"], extra["path"], status_code, extra["duration_ms"])
        if status_code >= 500:
            self.logger.error(msg, *args, extra=extra, exc_info=exc_info)
        elif status_code >= 400:
            self.logger.warning(msg, *args, extra=extra)
        else:
            self.logger.info(msg, *args, extra=extra)
