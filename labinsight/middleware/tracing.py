import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

TRACE_ID_CTX_VAR: ContextVar[str] = ContextVar("trace_id", default="")

logger = logging.getLogger("labinsight")


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Assigns a trace_id to every request, exposes it through TRACE_ID_CTX_VAR
    for log records and error envelopes, and echoes it as ``x-trace-id``.
    """
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
        TRACE_ID_CTX_VAR.set(trace_id)
        request.state.trace_id = trace_id
        started = time.perf_counter()

        response = await call_next(request)

        response.headers["x-trace-id"] = trace_id
        logger.info({
            "function": "request_complete",
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "elapsed_ms": round((time.perf_counter() - started) * 1000, 1),
        })
        return response
