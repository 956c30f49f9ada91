"""API error types and their JSON HTTP responses."""

from __future__ import annotations

import json
import logging

from werkzeug.wrappers import Response

from trykkeri.middleware import add_request_log_attrs

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base of errors that map to an HTTP response."""

    prefix = "internal"
    status = 500
    code = "internal_error"
    public_message: str | None = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(self.prefix if detail is None else f"{self.prefix}: {detail}")
        self.detail = detail


class InvalidInputError(ApiError):
    """The request was malformed; the message is shown to the client."""

    prefix = "invalid input"
    status = 400
    code = "invalid_input"
    public_message = None


class PdfGenerationError(ApiError):
    """The PDF renderer failed."""

    prefix = "pdf generation failed"
    status = 500
    code = "pdf_generation_failed"
    public_message = "PDF generation failed"


class RequestTimeoutError(ApiError):
    """The request ran past its deadline."""

    prefix = "request timeout"
    status = 408
    code = "timeout"
    public_message = "Request timeout"


class PayloadTooLargeError(ApiError):
    """The request or fetched body exceeded the size limit."""

    prefix = "request body too large"
    status = 413
    code = "payload_too_large"
    public_message = "Request body too large"


class InternalError(ApiError):
    """An unexpected server-side failure."""

    prefix = "internal"


def _encode(payload: dict[str, str]) -> bytes:
    text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    for raw, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(raw, escaped)
    return (text + "\n").encode("utf-8")


def error_response(environ: dict, error: BaseException) -> Response:
    """Build the JSON error response for ``error`` and note it in the request log."""
    if isinstance(error, ApiError) and not isinstance(error, InternalError):
        status, code = error.status, error.code
        message = error.public_message if error.public_message is not None else str(error)
        if isinstance(error, PdfGenerationError):
            logger.error("PDF generation error err=%s", error)
    else:
        status, code, message = 500, "internal_error", "Internal server error"
        logger.error("Internal error err=%s", error)

    add_request_log_attrs(environ, error=str(error))
    return Response(
        _encode({"error": code, "message": message}),
        status=status,
        content_type="application/json",
    )