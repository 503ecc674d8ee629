# stepbench/utils/logger.py
"""
stepbench Logger Utilities
--------------------------
Logging setup shared by every stepbench module.

Features:
 - JSONFormatter and human-friendly formatter
 - get_logger(): named module logger with env-driven level and a stdout handler
 - RequestIdFilter attaching the current request id to every record
 - FastAPI/Starlette middleware that assigns X-Request-ID and logs request timing

Usage:
    from stepbench.utils.logger import get_logger
    LOG = get_logger("stepbench.connectors.logs")
    LOG.info("query submitted id=%s", query_id)
"""

from __future__ import annotations

import os
import sys
import time
import uuid
import socket
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from stepbench.utils.common import json_dumps, now_iso, set_context, get_context

# -------------------------
# Constants & Env defaults
# -------------------------
DEFAULT_LOG_LEVEL = os.getenv("STEPBENCH_LOG_LEVEL", "INFO").upper()
DEFAULT_LOG_FORMAT = os.getenv("STEPBENCH_LOG_FORMAT", "human").lower()
SERVICE_NAME = os.getenv("STEPBENCH_SERVICE_NAME", "stepbench")

_RESERVED_ATTRS = frozenset((
    "args", "msg", "levelname", "levelno", "name", "pathname", "filename", "module",
    "lineno", "funcName", "exc_info", "exc_text", "stack_info", "created", "msecs",
    "relativeCreated", "thread", "threadName", "processName", "process", "taskName",
    "message",
))


def _make_request_id() -> str:
    return uuid.uuid4().hex


def _get_hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return "unknown-host"


# -------------------------
# Formatters
# -------------------------
class JSONFormatter(logging.Formatter):
    """
    JSON formatter that attaches standard fields:
      - ts, level, logger, message, module, line
      - service, hostname, pid
      - any `extra={...}` passed at the call site
    """
    def __init__(self, service_name: str = SERVICE_NAME, extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.service = service_name
        self.extra_fields = extra_fields or {}
        self.hostname = _get_hostname()
        self.pid = os.getpid()

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": now_iso(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
            "service": self.service,
            "hostname": self.hostname,
            "pid": self.pid,
        }
        extra = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS and v is not None}
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update(self.extra_fields)
        return json_dumps(payload)


class HumanFormatter(logging.Formatter):
    """
    Human-friendly formatter. Appends the request id when one is bound.
    """
    def __init__(self):
        super().__init__(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        req_id = getattr(record, "request_id", None)
        if req_id:
            base = f"{base} | req_id={req_id}"
        return base


class RequestIdFilter(logging.Filter):
    """
    Attach request_id (pulled from the request context) to log records.
    """
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_context("request_id", None)
        return True


def _make_formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JSONFormatter()
    return HumanFormatter()


def get_logger(name: str, level: Optional[str] = None, fmt: Optional[str] = None) -> logging.Logger:
    """
    Return a named stepbench logger with a stdout handler attached once.
    """
    log = logging.getLogger(name)
    log.setLevel((level or DEFAULT_LOG_LEVEL).upper())
    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_make_formatter(fmt or DEFAULT_LOG_FORMAT))
        handler.addFilter(RequestIdFilter())
        log.addHandler(handler)
        log.propagate = False
    return log


# -------------------------
# FastAPI middleware integration (request context)
# -------------------------
class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Injects a request id into the request context and echoes it back.
    Also records request/response timing at INFO level.
    """
    def __init__(self, app: FastAPI, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name
        self._log = get_logger("stepbench.request")

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        req_id = request.headers.get(self.header_name) or _make_request_id()
        set_context("request_id", req_id)
        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - start
            response.headers[self.header_name] = req_id
            response.headers["X-Request-Duration"] = f"{elapsed:.6f}"
            self._log.info(
                "http_request method=%s path=%s status=%d duration=%.3fs",
                request.method, request.url.path, response.status_code, elapsed,
            )
            return response
        finally:
            set_context("request_id", None)


__all__ = [
    "get_logger",
    "JSONFormatter",
    "HumanFormatter",
    "RequestIdFilter",
    "RequestContextMiddleware",
]
