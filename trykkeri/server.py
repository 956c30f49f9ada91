"""Command that runs the HTML to PDF API server."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
import time
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from trykkeri import config
from trykkeri.config import Config
from trykkeri.handler import Handler
from trykkeri.middleware import WSGIApp, chain, format_fields
from trykkeri.pdf import PdfService

VERSION = "1.0.0"
SHUTDOWN_TIMEOUT = 10.0

logger = logging.getLogger("trykkeri")


class _JsonFormatter(logging.Formatter):
    """One JSON object per log line, including structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        for key, value in (getattr(record, "fields", None) or {}).items():
            payload.setdefault(key, value)
        return json.dumps(payload, default=str, ensure_ascii=False)


def _log(level: int, message: str, **fields: Any) -> None:
    logger.log(level, "%s %s", message, format_fields(fields), extra={"fields": fields})


def init_logging(json_logs: bool) -> logging.Handler:
    """Send INFO and above to standard output, as JSON or as text lines."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        _JsonFormatter() if json_logs
        else logging.Formatter("time=%(asctime)s level=%(levelname)s msg=%(message)s")
    )
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(logging.INFO)
    return handler


def create_app(cfg: Config, version: str = VERSION, start_time: float | None = None) -> WSGIApp:
    """The WSGI application with all endpoints and the middleware stack."""
    started = time.monotonic() if start_time is None else start_time
    return chain(Handler(cfg, PdfService(cfg), version, started), cfg, version)


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    """Access lines go to debug; the middleware logs requests."""

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug(format, *args)


def main(argv: list[str] | None = None) -> int:
    """Run the server until SIGINT or SIGTERM; return the exit status."""
    argparse.ArgumentParser(prog="trykkeri", description="HTML to PDF API server.").parse_args(argv)

    try:
        cfg = config.load()
    except Exception as exc:  # noqa: BLE001
        print(f"config: {exc}", file=sys.stderr)
        return 1

    init_logging(cfg.json_logs)
    app = create_app(cfg, VERSION, time.monotonic())

    _log(logging.INFO, "Starting HTML→PDF API server", version=VERSION, port=cfg.port)
    try:
        server = make_server("0.0.0.0", cfg.port, app,
                             server_class=_ThreadingServer, handler_class=_QuietHandler)
    except OSError as exc:
        _log(logging.ERROR, "server error", err=exc)
        return 1
    _log(logging.INFO, "Server listening", address=f":{cfg.port}")
    _log(logging.INFO, "Docs", url=f"http://localhost:{cfg.port}/openapi.json")

    stop = threading.Event()
    failure: list[BaseException] = []

    def serve() -> None:
        try:
            server.serve_forever()
        except BaseException as exc:  # noqa: BLE001
            failure.append(exc)
        finally:
            stop.set()

    previous = {s: signal.signal(s, lambda *_: stop.set()) for s in (signal.SIGINT, signal.SIGTERM)}
    worker = threading.Thread(target=serve, name="trykkeri-server", daemon=True)
    worker.start()
    try:
        while not stop.wait(0.5):
            pass
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old)

    if failure:
        _log(logging.ERROR, "server error", err=failure[0])
        server.server_close()
        return 1

    _log(logging.INFO, "Received shutdown signal, shutting down gracefully")
    server.shutdown()
    worker.join(SHUTDOWN_TIMEOUT)
    if worker.is_alive():
        _log(logging.ERROR, "server shutdown error", err="timed out waiting for server")
    server.server_close()
    _log(logging.INFO, "Server shut down gracefully")
    return 0


if __name__ == "__main__":
    sys.exit(main())