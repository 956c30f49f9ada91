"""HTTP endpoints: health check, HTML printing and page mirroring."""

from __future__ import annotations

import http.client
import json
import re
import time
import urllib.error
import urllib.request
from collections.abc import Mapping
from urllib.parse import urlsplit

from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from trykkeri.config import Config
from trykkeri.errors import (
    ApiError,
    InternalError,
    InvalidInputError,
    PayloadTooLargeError,
    PdfGenerationError,
    error_response,
)
from trykkeri.middleware import add_request_log_attrs, request_deadline
from trykkeri.pdf import PdfOptions, PdfService, default_pdf_options
from trykkeri.ssrf import HostBlockedError, block_private_or_internal

MIRROR_FETCH_TIMEOUT = 15.0
MAX_URL_BODY_BYTES = 8192
MAX_REDIRECTS = 10
USER_AGENT = "Trykkeri-API-Mirror/1.0"

_UNSIGNED = re.compile(r"[0-9]+")
_UINT32_MAX = (1 << 32) - 1
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_OPTION_KEYS = (
    "page_size",
    "portrait",
    "margin_top_mm",
    "margin_right_mm",
    "margin_bottom_mm",
    "margin_left_mm",
    "dpi",
    "print_background",
    "grayscale",
)


def _parse_uint32(text: str) -> int | None:
    if not _UNSIGNED.fullmatch(text):
        return None
    value = int(text)
    return value if value <= _UINT32_MAX else None


def _parse_bool(text: str) -> bool | None:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def query_to_pdf_options(query: Mapping[str, str]) -> PdfOptions | None:
    """PDF options from query parameters, or None when none of them is given.

    Unparseable values keep the default for that option.
    """
    values = {key: query.get(key, "") or "" for key in _OPTION_KEYS}
    if not any(values.values()):
        return None

    opts = default_pdf_options()
    if values["page_size"]:
        opts.page_size = values["page_size"]
    for key in ("portrait", "print_background", "grayscale"):
        flag = _parse_bool(values[key])
        if flag is not None:
            setattr(opts, key, flag)
    for key in ("margin_top_mm", "margin_right_mm", "margin_bottom_mm", "margin_left_mm", "dpi"):
        number = _parse_uint32(values[key])
        if number is not None:
            setattr(opts, key, number)
    return opts


def _read_limited(stream, limit: int) -> bytes:
    """Read until ``limit`` bytes or end of stream."""
    chunks: list[bytes] = []
    remaining = max(limit, 0)
    while remaining > 0:
        chunk = stream.read(min(remaining, 65536))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _host_of(netloc: str) -> str:
    return netloc.rpartition("@")[2]


def _header_safe(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ")


def _json_body(payload: dict) -> bytes:
    return (json.dumps(payload, separators=(",", ":")) + "\n").encode("utf-8")


class _RedirectGuard(urllib.request.HTTPRedirectHandler):
    """Follows redirects while refusing internal hosts and long chains."""

    def __init__(self) -> None:
        super().__init__()
        self.redirects = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self.redirects += 1
        try:
            if self.redirects >= MAX_REDIRECTS:
                raise InvalidInputError("too many redirects")
            block_private_or_internal(_host_of(urlsplit(newurl).netloc))
        except Exception:
            fp.close()
            raise
        return super().redirect_request(req, fp, code, msg, headers, newurl)


class Handler:
    """The service's WSGI application."""

    def __init__(
        self, cfg: Config, pdf_service: PdfService, version: str, start_time: float
    ) -> None:
        self.cfg = cfg
        self.pdf_service = pdf_service
        self.version = version
        # Monotonic-clock time at which the service started.
        self.start_time = start_time
        self._url_map = Map(
            [
                Rule("/health", endpoint="health", methods=["GET", "HEAD"]),
                Rule("/favicon.ico", endpoint="favicon", methods=["GET"]),
                Rule("/print", endpoint="print_pdf", methods=["POST"]),
                Rule("/mirror", endpoint="mirror", methods=["POST"]),
            ]
        )
        self._endpoints = {
            "health": self.health,
            "favicon": self.favicon,
            "print_pdf": self.print_pdf,
            "mirror": self.mirror,
        }

    def health(self, request: Request) -> Response:
        """Report status, version and uptime."""
        payload = {
            "status": "ok",
            "version": self.version,
            "uptime_seconds": int(time.monotonic() - self.start_time),
        }
        body = b"" if request.method == "HEAD" else _json_body(payload)
        return Response(body, status=200, content_type="application/json")

    def favicon(self, request: Request) -> Response:
        """Answer favicon requests with 204 so browsers do not log a 404."""
        return Response(status=204)

    def print_pdf(self, request: Request) -> Response:
        """Render the HTML request body to PDF."""
        try:
            return self._print_pdf(request)
        except ApiError as exc:
            return error_response(request.environ, exc)

    def mirror(self, request: Request) -> Response:
        """Fetch the page whose URL is the request body and render it to PDF."""
        try:
            return self._mirror(request)
        except ApiError as exc:
            return error_response(request.environ, exc)

    def __call__(self, environ, start_response):
        request = Request(environ)
        adapter = self._url_map.bind_to_environ(environ)
        try:
            endpoint, _ = adapter.match()
        except NotFound:
            response = Response("404 page not found\n", status=404, mimetype="text/plain")
        except MethodNotAllowed as exc:
            response = Response(status=405)
            if exc.valid_methods:
                response.headers["Allow"] = ", ".join(exc.valid_methods)
        except HTTPException as exc:
            return exc(environ, start_response)
        else:
            try:
                response = self._endpoints[endpoint](request)
            except Exception as exc:
                response = error_response(environ, exc)
        return response(environ, start_response)

    def _read_body(self, request: Request, limit: int) -> bytes:
        try:
            return _read_limited(request.stream, limit)
        except OSError as exc:
            raise InternalError(f"failed to read body: {exc}") from exc

    def _print_pdf(self, request: Request) -> Response:
        limit = self.cfg.max_body_bytes
        body = self._read_body(request, limit + 1)
        if len(body) > limit:
            raise PayloadTooLargeError()

        html = body.decode("utf-8", "surrogateescape")
        if not html.strip():
            raise InvalidInputError("HTML content cannot be empty")

        preview_bytes = self.cfg.payload_log_max_bytes
        if preview_bytes > 0:
            add_request_log_attrs(
                request.environ,
                payload_preview=body[:preview_bytes].decode("utf-8", "replace"),
                payload_size=len(body),
            )

        query = request.args
        return self._render(request, html, query.get("base_url") or None)

    def _mirror(self, request: Request) -> Response:
        body = self._read_body(request, MAX_URL_BODY_BYTES + 1)
        if len(body) > MAX_URL_BODY_BYTES:
            raise InvalidInputError("url too long")

        raw_url = body.decode("utf-8", "replace").strip()
        if not raw_url:
            raise InvalidInputError("request body must contain the URL")

        try:
            parts = urlsplit(raw_url)
            parts.port  # noqa: B018 - validates the port
        except ValueError as exc:
            raise InvalidInputError(f"invalid url: {exc}") from exc
        if parts.scheme not in ("http", "https"):
            raise InvalidInputError("url scheme must be http or https")
        host = _host_of(parts.netloc)
        if not host:
            raise InvalidInputError("url must have a host")

        try:
            block_private_or_internal(host)
        except HostBlockedError as exc:
            raise InvalidInputError(f"url host is not allowed: {exc}") from exc
        except ValueError as exc:
            raise InvalidInputError(f"url: {exc}") from exc

        html = self._fetch(request, raw_url)
        if not html.strip():
            raise InvalidInputError("target page returned empty content")

        # Relative links resolve against the fetched page unless told otherwise.
        base_url = request.args.get("base_url") or raw_url
        return self._render(request, html, base_url)

    def _fetch(self, request: Request, url: str) -> str:
        fetch_timeout = MIRROR_FETCH_TIMEOUT
        deadline = request_deadline(request.environ)
        if deadline is not None:
            fetch_timeout = max(min(fetch_timeout, deadline - time.monotonic()), 0.001)

        opener = urllib.request.build_opener(_RedirectGuard())
        outgoing = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        try:
            response = opener.open(outgoing, timeout=fetch_timeout)
        except urllib.error.HTTPError as exc:
            exc.close()
            raise PdfGenerationError(f"fetch failed: {exc.code} {exc.reason}") from exc
        except (OSError, ValueError, http.client.HTTPException, ApiError) as exc:
            raise PdfGenerationError(f"fetch failed: {exc}") from exc

        limit = self.cfg.max_body_bytes
        with response:
            status = response.status
            if not 200 <= status < 300:
                raise PdfGenerationError(f"fetch failed: {status} {response.reason}")
            try:
                content = _read_limited(response, limit + 1)
            except (OSError, http.client.HTTPException) as exc:
                raise InternalError(f"failed to read response: {exc}") from exc
        if len(content) > limit:
            raise PayloadTooLargeError()
        return content.decode("utf-8", "surrogateescape")

    def _render(self, request: Request, html: str, base_url: str | None) -> Response:
        query = request.args
        pdf_bytes = self.pdf_service.render(
            html,
            base_url,
            query_to_pdf_options(query),
            request_deadline(request.environ),
        )
        filename = query.get("filename") or "document.pdf"
        response = Response(pdf_bytes, status=200, content_type="application/pdf")
        response.headers["Content-Disposition"] = _header_safe(f'inline; filename="{filename}"')
        response.headers["Cache-Control"] = "no-store"
        return response