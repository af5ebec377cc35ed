from typing import Any, Dict, List, Optional
from fastapi import Request, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from labinsight.middleware.tracing import TRACE_ID_CTX_VAR


class LabInsightError(Exception):
    """Base class for errors surfaced to API callers.

    ``details`` carries diagnostics (attempted methods, per-strategy counts,
    acquired text) so a client can retry with pasted text instead of a file.
    """

    code = "LABINSIGHT_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EmptyInputError(LabInsightError):
    code = "EMPTY_INPUT"

    def __init__(self, message: str = "No document content was provided"):
        super().__init__(message)


class InsufficientTextError(LabInsightError):
    code = "INSUFFICIENT_TEXT"

    def __init__(self, methods_attempted: List[str], partial_text: str = "", min_chars: int = 0):
        super().__init__(
            "Could not extract enough readable text from the document. "
            "Try pasting the report text instead.",
            {
                "methodsAttempted": list(methods_attempted),
                "partialText": partial_text,
                "textLength": len(partial_text),
                "minimumLength": min_chars,
            },
        )
        self.methods_attempted = list(methods_attempted)
        self.partial_text = partial_text


class NoParametersFoundError(LabInsightError):
    code = "NO_PARAMETERS_FOUND"

    def __init__(self, strategy_counts: Dict[str, int], extracted_text: str = "", methods_used: Optional[List[str]] = None):
        super().__init__(
            "No recognizable health parameters were found in the document",
            {
                "strategyCounts": dict(strategy_counts),
                "extractedText": extracted_text,
                "methodsUsed": list(methods_used or []),
            },
        )
        self.strategy_counts = dict(strategy_counts)
        self.extracted_text = extracted_text


class ValidationRangeError(LabInsightError):
    """Raised inside validation to reject a candidate; never reaches a client."""

    code = "VALUE_OUT_OF_RANGE"

    def __init__(self, parameter: str, value: Any, bounds: Optional[tuple] = None):
        super().__init__(
            f"{parameter} value {value!r} outside plausible range {bounds}",
            {"parameter": parameter, "value": value, "range": list(bounds) if bounds else None},
        )


class ExternalServiceError(LabInsightError):
    code = "EXTERNAL_SERVICE_ERROR"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class SessionError(LabInsightError):
    code = "INVALID_SESSION"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid or expired session"):
        super().__init__(message)


def status_to_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        413: "PAYLOAD_TOO_LARGE",
        415: "UNSUPPORTED_MEDIA_TYPE",
        422: "UNPROCESSABLE_ENTITY",
        429: "TOO_MANY_REQUESTS",
        500: "INTERNAL_SERVER_ERROR",
        503: "SERVICE_UNAVAILABLE",
    }
    return mapping.get(status_code, f"HTTP_{status_code}")


def error_body(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "trace_id": TRACE_ID_CTX_VAR.get(),
    }
    if details is not None:
        body["details"] = details
    return body


async def handle_labinsight_error(request: Request, exc: LabInsightError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message, exc.details))


async def handle_http_exception(request: Request, exc: HTTPException):
    detail: Any = exc.detail
    message = detail if isinstance(detail, str) else "HTTP error"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(status_to_code(exc.status_code), message, detail),
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_exception(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body("UNPROCESSABLE_ENTITY", "Request validation failed", jsonable_encoder(exc.errors())),
    )


async def handle_unhandled_exception(request: Request, exc: Exception):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_SERVER_ERROR", "An unexpected error occurred", str(exc)),
    )
