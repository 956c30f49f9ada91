"""Service configuration read from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass

_UNSIGNED = re.compile(r"[0-9]+")
_SIGNED = re.compile(r"[+-]?[0-9]+")
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT16_MAX = (1 << 16) - 1


@dataclass(frozen=True)
class Config:
    """Runtime settings of the PDF service."""

    port: int = 8080
    max_body_bytes: int = 2_000_000
    render_timeout_ms: int = 30_000
    wkhtmltopdf_path: str = "wkhtmltopdf"
    allow_net: bool = False
    allowlist_paths: tuple[str, ...] = ()
    # None means permissive: every origin is allowed.
    cors_origins: tuple[str, ...] | None = None
    json_logs: bool = False
    # Maximum bytes of a request body copied into the request log (0 disables it).
    payload_log_max_bytes: int = 4096


def _get_str(env: Mapping[str, str], key: str, default: str) -> str:
    return env.get(key, "") or default


def _get_int(
    env: Mapping[str, str],
    key: str,
    default: int,
    *,
    pattern: re.Pattern[str],
    low: int,
    high: int,
) -> int:
    text = env.get(key, "")
    if not text or not pattern.fullmatch(text):
        return default
    value = int(text)
    if not low <= value <= high:
        return default
    return value


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    text = env.get(key, "")
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return default


def _get_list(env: Mapping[str, str], key: str) -> tuple[str, ...]:
    text = env.get(key, "")
    return tuple(part.strip() for part in text.split(",") if part.strip())


def load(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from ``environ`` (the process environment by default).

    Values that are missing or cannot be parsed fall back to the defaults.
    """
    env = os.environ if environ is None else environ
    cors_origins = _get_list(env, "CORS_ORIGINS") or None
    return Config(
        port=_get_int(env, "PORT", 8080, pattern=_UNSIGNED, low=0, high=_UINT16_MAX),
        max_body_bytes=_get_int(
            env, "MAX_BODY_BYTES", 2_000_000, pattern=_SIGNED, low=_INT64_MIN, high=_INT64_MAX
        ),
        render_timeout_ms=_get_int(
            env, "RENDER_TIMEOUT_MS", 30_000, pattern=_SIGNED, low=_INT64_MIN, high=_INT64_MAX
        ),
        wkhtmltopdf_path=_get_str(env, "WKHTMLTOPDF_PATH", "wkhtmltopdf"),
        allow_net=_get_bool(env, "ALLOW_NET", False),
        allowlist_paths=_get_list(env, "ALLOWLIST_PATHS"),
        cors_origins=cors_origins,
        json_logs=_get_bool(env, "JSON_LOGS", False),
        payload_log_max_bytes=_get_int(
            env, "PAYLOAD_LOG_MAX_BYTES", 4096, pattern=_SIGNED, low=_INT64_MIN, high=_INT64_MAX
        ),
    )