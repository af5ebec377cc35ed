import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from labinsight.utils.exceptions import error_body

logger = logging.getLogger("labinsight")

limiter = Limiter(key_func=get_remote_address, default_limits=[])

EXTRACT_LIMIT = "20/minute"
ANALYZE_LIMIT = "10/minute"
RISK_LIMIT = "20/minute"
CONTEXT_LIMIT = "10/minute"


async def handle_rate_limit(request: Request, exc: RateLimitExceeded):
    try:
        retry_after = max(1, int(getattr(exc, "reset_time", time.time()) - time.time()))
    except (TypeError, ValueError):
        retry_after = 60
    logger.info({
        "function": "rate_limit",
        "path": str(request.url.path),
        "client": get_remote_address(request),
    })
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": str(retry_after)},
        content=error_body("TOO_MANY_REQUESTS", "Too many requests. Please wait a bit and try again."),
    )
