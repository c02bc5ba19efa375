"""Logging for the WA Leads service.

Two loggers are configured by :func:`init_logging`:

``wa_leads``
    Parent of every module logger in the package; written to ``app.log``.
``uvicorn.access``
    One JSON document per HTTP request, written to ``access.log`` by the
    middleware installed with :func:`_install_access_logging`.

Both files rotate at midnight. WhatsApp and admin credentials are masked
before anything from a request reaches the access log.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

APP_LOGGER_NAME = "wa_leads"
ACCESS_LOGGER_NAME = "uvicorn.access"

# probes would drown the access log
UNLOGGED_PATHS = frozenset({"/api/health", "/api/metrics"})

SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "access_token",
    "verify_token",
    "meta_app_secret",
    "x-admin-token",
    "x-hub-signature-256",
    "hub.verify_token",
}

_MASK = "***"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


@dataclass(frozen=True)
class LogConfig:
    directory: str = "logs"
    level: int = logging.INFO
    json_lines: bool = False
    retention_days: int = 7
    rotate_utc: bool = False

    @classmethod
    def from_env(cls) -> "LogConfig":
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        return cls(
            directory=os.getenv("LOG_DIR", "logs"),
            level=getattr(logging, level_name, logging.INFO),
            json_lines=_env_flag("LOG_JSON"),
            retention_days=int(os.getenv("LOG_RETENTION_DAYS", "7")),
            rotate_utc=_env_flag("LOG_ROTATE_UTC"),
        )

    def formatter(self) -> logging.Formatter:
        if self.json_lines:
            return JsonFormatter()
        return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")

    def file_handler(self, filename: str) -> TimedRotatingFileHandler:
        handler = TimedRotatingFileHandler(
            os.path.join(self.directory, filename),
            when="midnight",
            backupCount=self.retention_days,
            utc=self.rotate_utc,
        )
        handler.setFormatter(self.formatter())
        return handler


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON (``LOG_JSON=true``)."""

    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            document["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(document, ensure_ascii=False)


def _scrub(data: object) -> object:
    """Mask values stored under :data:`SENSITIVE_FIELDS`, at any depth."""

    if isinstance(data, dict):
        return {
            key: _MASK if str(key).lower() in SENSITIVE_FIELDS else _scrub(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [_scrub(item) for item in data]
    return data


async def _capture_body(request: Request) -> object | None:
    """Read the request body for logging and leave it readable for the route."""

    raw = await request.body()

    async def replay() -> dict:
        return {"type": "http.request", "body": raw, "more_body": False}

    request._receive = replay  # type: ignore[attr-defined]
    if not raw:
        return None
    try:
        return _scrub(json.loads(raw))
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def _install_access_logging(app: FastAPI) -> None:
    """Attach the access-log middleware to ``app``.

    The request id comes from ``X-Request-Id`` when the caller sends one and
    is echoed back on the response either way. Bodies are only logged when
    ``LOG_REQUEST_BODIES=true`` at install time.
    """

    with_bodies = _env_flag("LOG_REQUEST_BODIES")
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        body = await _capture_body(request) if with_bodies else None

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        entry: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round(elapsed_ms, 2),
            "client_ip": _client_ip(request),
            "headers": _scrub(dict(request.headers)),
        }
        if body is not None:
            entry["body"] = body

        response.headers["X-Request-Id"] = request_id
        access_logger.info(json.dumps(entry, default=str, ensure_ascii=False))
        return response


def init_logging(app: FastAPI | None = None) -> None:
    """Configure the package and access loggers; install middleware on ``app``.

    Safe to call more than once: the package logger keeps its first file
    handler while the access logger's handlers are always replaced.
    """

    config = LogConfig.from_env()
    os.makedirs(config.directory, exist_ok=True)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(config.file_handler("app.log"))
    app_logger.setLevel(config.level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(config.file_handler("access.log"))
    access_logger.setLevel(config.level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)
