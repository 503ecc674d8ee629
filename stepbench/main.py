# stepbench/main.py
"""
stepbench — FastAPI application entrypoint

Responsibilities:
 - build the FastAPI app, CORS, request-context logging middleware
 - map the error taxonomy onto {message, error} JSON bodies
 - health endpoints (liveness / readiness) and Prometheus scrape
 - include the orchestration router
 - uvicorn CLI entrypoint
"""

from __future__ import annotations

import os
from typing import Any, Dict

import uvicorn
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError as FastAPIRequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from stepbench.api.orchestrator import Services, get_services, router as orchestrator_router
from stepbench.config import get_settings
from stepbench.errors import ExternalServiceError, StepBenchError
from stepbench.metrics import CONTENT_TYPE_LATEST, render_latest
from stepbench.utils.common import shutdown_executor
from stepbench.utils.logger import RequestContextMiddleware, get_logger

LOG = get_logger("stepbench.main")

APP_TITLE = os.getenv("STEPBENCH_APP_TITLE", "stepbench")
APP_VERSION = os.getenv("STEPBENCH_VERSION", "0.1.0")
APP_DESC = "Starts EXPRESS and STANDARD Step Functions executions and compares their durations"


def _error_body(message: str, code: str) -> Dict[str, Any]:
    return {"message": message, "error": code}


# -------------------------
# Exception handlers
# -------------------------
async def stepbench_exception_handler(request: Request, exc: StepBenchError):
    if exc.status_code >= 500:
        LOG.error("%s: %s", exc.code, exc.message)
        message = exc.public_message
    else:
        LOG.info("Rejected request: %s", exc.message)
        message = exc.message
    return JSONResponse(status_code=exc.status_code, content=_error_body(message, exc.code))


async def aws_exception_handler(request: Request, exc: Exception):
    LOG.error("AWS call failed: %s", exc)
    return JSONResponse(
        status_code=ExternalServiceError.status_code,
        content=_error_body(ExternalServiceError.public_message, ExternalServiceError.code),
    )


async def validation_exception_handler(request: Request, exc: FastAPIRequestValidationError):
    return JSONResponse(status_code=400, content=_error_body("Invalid request body.", "invalid_request"))


async def generic_exception_handler(request: Request, exc: Exception):
    LOG.exception("Unhandled exception: %s", exc)
    return JSONResponse(status_code=500, content=_error_body("Error processing request", "internal_server_error"))


def create_app() -> FastAPI:
    app = FastAPI(title=APP_TITLE, version=APP_VERSION, description=APP_DESC, docs_url="/docs", redoc_url=None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("STEPBENCH_CORS_ALLOW_ORIGINS", "*").split(","),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(StepBenchError, stepbench_exception_handler)
    app.add_exception_handler(ClientError, aws_exception_handler)
    app.add_exception_handler(BotoCoreError, aws_exception_handler)
    app.add_exception_handler(FastAPIRequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # -------------------------
    # Health endpoints
    # -------------------------
    @app.get("/health/live", tags=["health"])
    async def liveness_probe():
        return PlainTextResponse("OK", status_code=200)

    @app.get("/health/ready", tags=["health"])
    async def readiness_probe(services: Services = Depends(get_services)):
        """
        Ready when both state machine identifiers are configured.
        """
        missing = services.settings.missing()
        checks = {"app": "ok", "config": "ok" if not missing else "missing", "missing": missing}
        return JSONResponse(status_code=200 if not missing else 503, content=checks)

    @app.get("/metrics", tags=["metrics"])
    async def prometheus_metrics():
        return Response(content=render_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(orchestrator_router)

    @app.on_event("shutdown")
    async def _shutdown_event():
        LOG.info("Shutting down stepbench")
        shutdown_executor()

    return app


app = create_app()


# -------------------------
# Uvicorn runner / CLI
# -------------------------
def run_uvicorn(host: str = "0.0.0.0", port: int = 8000, reload: bool = False, workers: int = 1):
    uvicorn.run("stepbench.main:app", host=host, port=int(port), reload=reload, workers=workers, log_level="info")


def main():
    import argparse
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="stepbench")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument("--workers", type=int, default=int(os.getenv("STEPBENCH_UVICORN_WORKERS", "1")))
    args = parser.parse_args()
    run_uvicorn(args.host, args.port, reload=args.reload, workers=args.workers)


if __name__ == "__main__":
    main()
