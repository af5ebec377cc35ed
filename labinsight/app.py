import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

# Settings are read at import time by the modules below
load_dotenv(ENV_PATH)

from slowapi.errors import RateLimitExceeded  # noqa: E402
from slowapi.middleware import SlowAPIMiddleware  # noqa: E402

from labinsight.middleware.tracing import TRACE_ID_CTX_VAR, TracingMiddleware  # noqa: E402
from labinsight.models import init_db  # noqa: E402
from labinsight.routes import (  # noqa: E402
    analyze_routes,
    documents_routes,
    extract_routes,
    medical_context_routes,
    risk_routes,
)
from labinsight.utils.exceptions import (  # noqa: E402
    LabInsightError,
    handle_http_exception,
    handle_labinsight_error,
    handle_unhandled_exception,
    handle_validation_exception,
)
from labinsight.utils.rate_limit import handle_rate_limit, limiter  # noqa: E402

VERSION = "0.2.0"


# --- logging setup ---
class JsonFormatter(logging.Formatter):
    def format(self, record):  # type: ignore[override]
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "function": record.funcName,
            "trace_id": TRACE_ID_CTX_VAR.get() or None,
        }
        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            payload["message"] = record.getMessage()
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> logging.Logger:
    logger = logging.getLogger("labinsight")
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    return logger


logger = configure_logging()


def cors_origins():
    raw = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    return [o.strip() for o in raw.split(",") if o.strip()]


app = FastAPI(title="LabInsight Backend", version=VERSION)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(TracingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-trace-id", "Retry-After"],
)

app.add_exception_handler(LabInsightError, handle_labinsight_error)
app.add_exception_handler(StarletteHTTPException, handle_http_exception)
app.add_exception_handler(RequestValidationError, handle_validation_exception)
app.add_exception_handler(RateLimitExceeded, handle_rate_limit)
app.add_exception_handler(Exception, handle_unhandled_exception)


@app.on_event("startup")
def _init_db():
    init_db()
    logger.info({"function": "startup", "version": VERSION})


app.include_router(extract_routes.router, prefix="/api")
app.include_router(documents_routes.router, prefix="/api")
app.include_router(risk_routes.router, prefix="/api")
app.include_router(analyze_routes.router, prefix="/api")
app.include_router(medical_context_routes.router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok", "version": VERSION}
