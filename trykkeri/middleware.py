"""WSGI middleware: CORS, gzip, request logging, body limit and deadlines."""

from __future__ import annotations

import gzip as _gzip
import json
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from trykkeri.config import Config

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]

_LOG_ATTRS_KEY = "trykkeri.log_attrs"
_DEADLINE_KEY = "trykkeri.deadline"

logger = logging.getLogger(__name__)


def _status_code(status: str) -> int:
    return int(status.split(" ", 1)[0])


def _close(body: Iterable[bytes]) -> None:
    close = getattr(body, "close", None)
    if close is not None:
        close()


def format_fields(fields: dict[str, Any]) -> str:
    """Render fields as ``key=value`` pairs, quoting values that need it."""

    def render(value: Any) -> str:
        text = str(value)
        needs_quotes = not text or any(c in text for c in ' ="\n\t')
        return json.dumps(text, ensure_ascii=False) if needs_quotes else text

    return " ".join(f"{key}={render(value)}" for key, value in fields.items())


def add_request_log_attrs(environ: dict, **kwargs: Any) -> None:
    """Add fields to the current request's log line; a no-op outside request_log."""
    attrs = environ.get(_LOG_ATTRS_KEY)
    if isinstance(attrs, dict):
        attrs.update(kwargs)


def request_deadline(environ: dict) -> float | None:
    """The monotonic-clock deadline set by the timeout middleware, if any."""
    return environ.get(_DEADLINE_KEY)


def cors(app: WSGIApp, allowed_origins: Iterable[str] | None) -> WSGIApp:
    """Echo allowed origins and answer preflight requests with 204."""
    origins = tuple(allowed_origins or ())

    def middleware(environ, start_response):
        origin = environ.get("HTTP_ORIGIN", "")
        allowed = bool(origin) and (not origins or origin in origins or "*" in origins)

        def with_origin(headers):
            headers = list(headers)
            if allowed:
                headers = [(k, v) for k, v in headers if k.lower() != "access-control-allow-origin"]
                headers.append(("Access-Control-Allow-Origin", origin))
            return headers

        if environ.get("REQUEST_METHOD") == "OPTIONS":
            start_response("204 No Content", with_origin([
                ("Access-Control-Allow-Methods", "GET, POST, OPTIONS"),
                ("Access-Control-Allow-Headers", "Content-Type, Authorization"),
                ("Access-Control-Max-Age", "86400"),
            ]))
            return []

        return app(environ, lambda s, h, e=None: start_response(s, with_origin(h), e))

    return middleware


def gzip(app: WSGIApp) -> WSGIApp:
    """Compress responses for clients that accept gzip."""

    def middleware(environ, start_response):
        if "gzip" not in environ.get("HTTP_ACCEPT_ENCODING", ""):
            return app(environ, start_response)

        chunks: list[bytes] = []
        status = [200]

        def gzip_start_response(s, headers, exc_info=None):
            status[0] = _status_code(s)
            kept = [(k, v) for k, v in headers
                    if k.lower() not in ("content-length", "content-encoding")]
            start_response(s, [*kept, ("Content-Encoding", "gzip")], exc_info)
            return chunks.append

        body = app(environ, gzip_start_response)
        try:
            chunks.extend(body)
        finally:
            _close(body)
        if status[0] in (204, 304):
            return []
        return [_gzip.compress(b"".join(chunks))]

    return middleware


def request_log(app: WSGIApp, version: str) -> WSGIApp:
    """Log one line per request with method, path, status, duration and extra fields."""

    def middleware(environ, start_response):
        start = time.monotonic()
        extra: dict[str, Any] = {}
        environ[_LOG_ATTRS_KEY] = extra
        status = [200]

        def recording_start_response(s, headers, exc_info=None):
            status[0] = _status_code(s)
            return start_response(s, headers, exc_info)

        def emit():
            fields = {
                "method": environ.get("REQUEST_METHOD", ""),
                "uri": environ.get("PATH_INFO", ""),
                "status": status[0],
                "duration_ms": int((time.monotonic() - start) * 1000),
                **extra,
            }
            level = logging.ERROR if status[0] >= 400 else logging.INFO
            logger.log(level, "request %s", format_fields(fields), extra={"fields": fields})

        try:
            body = app(environ, recording_start_response)
        except Exception:
            status[0] = 500
            emit()
            raise
        return _logged(body, emit)

    return middleware


def _logged(body: Iterable[bytes], emit: Callable[[], None]) -> Iterator[bytes]:
    try:
        yield from body
    finally:
        try:
            _close(body)
        finally:
            emit()


class _LimitedInput:
    """Read-only stream that yields at most ``limit`` bytes of another stream."""

    def __init__(self, stream, limit: int) -> None:
        self._stream = stream
        self._remaining = max(limit, 0)

    def _take(self, reader, size: int | None) -> bytes:
        budget = self._remaining if size is None or size < 0 else min(size, self._remaining)
        if budget <= 0:
            return b""
        data = reader(budget)
        self._remaining -= len(data)
        return data

    def read(self, size: int | None = -1) -> bytes:
        return self._take(self._stream.read, size)

    def readline(self, size: int | None = -1) -> bytes:
        return self._take(self._stream.readline, size)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.readline, b"")


def max_body_bytes(app: WSGIApp, max_bytes: int) -> WSGIApp:
    """Let handlers read at most ``max_bytes + 1`` bytes of the request body."""

    def middleware(environ, start_response):
        stream = environ.get("wsgi.input")
        if stream is not None:
            environ["wsgi.input"] = _LimitedInput(stream, max_bytes + 1)
        return app(environ, start_response)

    return middleware


def timeout(app: WSGIApp, seconds: float) -> WSGIApp:
    """Attach a deadline ``seconds`` from now; an earlier deadline is kept."""

    def middleware(environ, start_response):
        deadline = time.monotonic() + seconds
        existing = environ.get(_DEADLINE_KEY)
        environ[_DEADLINE_KEY] = deadline if existing is None else min(existing, deadline)
        return app(environ, start_response)

    return middleware


def chain(app: WSGIApp, cfg: Config, version: str) -> WSGIApp:
    """Wrap ``app`` in the full middleware stack."""
    app = timeout(app, (cfg.render_timeout_ms + 5000) / 1000)
    app = max_body_bytes(app, cfg.max_body_bytes)
    app = gzip(app)
    app = cors(app, cfg.cors_origins)
    return request_log(app, version)