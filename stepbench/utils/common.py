# stepbench/utils/common.py
"""
stepbench Common Utilities
--------------------------
Small helpers shared across the service.

Features:
 - JSON encoding with datetime/Decimal/Enum support
 - Per-request context propagation (contextvars)
 - Shared ThreadPoolExecutor for blocking SDK calls from async code
"""

from __future__ import annotations

import os
import enum
import json
import datetime
import functools
import threading
import contextvars
import asyncio
from decimal import Decimal
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

# -------------------------
# JSON Helpers
# -------------------------
class EnhancedJSONEncoder(json.JSONEncoder):
    """Custom JSON encoder that supports datetime, Decimal, Enum and sets."""
    def default(self, obj):
        if isinstance(obj, (datetime.datetime, datetime.date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, enum.Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        return super().default(obj)


def json_dumps(obj: Any, indent: Optional[int] = None) -> str:
    return json.dumps(obj, cls=EnhancedJSONEncoder, indent=indent)


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


# -------------------------
# Context propagation
# -------------------------
_current_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar("stepbench_ctx", default={})


def set_context(key: str, value: Any):
    ctx = dict(_current_context.get())
    ctx[key] = value
    _current_context.set(ctx)


def get_context(key: str, default: Any = None) -> Any:
    return _current_context.get().get(key, default)


def clear_context():
    _current_context.set({})


# -------------------------
# Blocking call offload
# -------------------------
_executor_singleton: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor(max_workers: Optional[int] = None) -> ThreadPoolExecutor:
    global _executor_singleton
    with _executor_lock:
        if _executor_singleton is None:
            workers = max_workers or int(os.getenv("STEPBENCH_IO_WORKERS", "16"))
            _executor_singleton = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stepbench-io")
        return _executor_singleton


async def run_in_executor(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Run blocking function in global ThreadPoolExecutor, keeping the request context."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    call = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(get_executor(), ctx.run, call)


def shutdown_executor():
    global _executor_singleton
    with _executor_lock:
        if _executor_singleton is not None:
            _executor_singleton.shutdown(wait=False)
            _executor_singleton = None
