# stepbench/api/orchestrator.py
"""
stepbench Orchestration API

Single JSON endpoint (POST /) driving both workflow variants:

  {"cmd": "start", "stateMachine"?: "EXPRESS"|"STANDARD", ...}
      start one or both executions; the raw body is forwarded as input
  {"cmd": "list",  "stateMachine"?: "EXPRESS"|"STANDARD"}
      last durations for one or both variants

Validation happens before configuration is checked, and configuration is
checked before any AWS call is made.
"""

from __future__ import annotations

import json
import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from stepbench.config import Settings, get_settings
from stepbench.errors import InvalidCommandError, InvalidVariantError, RequestValidationError, StepBenchError
from stepbench.metrics import SB_EXECUTIONS_STARTED, SB_REQUESTS
from stepbench.models import (
    Command,
    ListResponse,
    OrchestrationRequest,
    StartResponse,
    WorkflowVariant,
)
from stepbench.services.connectors.logs_connector import LogsConnector
from stepbench.services.connectors.sfn_connector import StepFunctionsConnector
from stepbench.services.durations import DurationResolver
from stepbench.utils.logger import get_logger

LOG = get_logger("stepbench.api.orchestrator")

router = APIRouter(tags=["orchestrator"])


@dataclass
class Services:
    settings: Settings
    sfn: StepFunctionsConnector
    resolver: DurationResolver


@functools.lru_cache(maxsize=1)
def get_services() -> Services:
    settings = get_settings()
    sfn = StepFunctionsConnector.from_settings(settings)
    logs = LogsConnector.from_settings(settings)
    return Services(settings=settings, sfn=sfn, resolver=DurationResolver(settings, logs, sfn))


# -------------------------
# Request parsing
# -------------------------
def parse_payload(raw: bytes) -> Dict[str, Any]:
    if not raw or not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise RequestValidationError("Request body must be valid JSON.")
    if not isinstance(payload, dict):
        raise RequestValidationError("Request body must be a JSON object.")
    return payload


def parse_request(payload: Dict[str, Any]) -> OrchestrationRequest:
    try:
        return OrchestrationRequest.model_validate(payload)
    except ValidationError as e:
        fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
        if "cmd" in fields:
            raise InvalidCommandError()
        if "stateMachine" in fields:
            raise InvalidVariantError()
        raise RequestValidationError()


# -------------------------
# Commands
# -------------------------
async def start_executions(services: Services, variants: Tuple[WorkflowVariant, ...], payload: Dict[str, Any]) -> StartResponse:
    targets = [(v, services.settings.state_machine_arn(v)) for v in variants]
    LOG.info("Starting executions for %s", ", ".join(v.value for v in variants))
    # both starts run together; a failure in either fails the whole request
    arns = await asyncio.gather(*(services.sfn.start_execution_async(arn, payload) for _, arn in targets))
    for variant in variants:
        SB_EXECUTIONS_STARTED.labels(variant=variant.value).inc()
    if len(variants) == 1:
        return StartResponse(message="State machine has started its execution", executionArn=arns[0])
    by_variant = dict(zip(variants, arns))
    return StartResponse(
        message="Both state machines have started their executions",
        expressExecutionArn=by_variant[WorkflowVariant.FAST],
        standardExecutionArn=by_variant[WorkflowVariant.DURABLE],
    )


async def list_durations(services: Services, variants: Tuple[WorkflowVariant, ...]) -> ListResponse:
    result = await services.resolver.resolve(variants)
    limit = services.settings.sample_limit
    if len(variants) == 1:
        series = result.for_variant(variants[0])
        return ListResponse(
            message=f"Last {limit} execution durations retrieved for the {variants[0].value} state machine",
            durations=series.samples,
            method=series.method,
        )
    return ListResponse(
        message=f"Last {limit} execution durations retrieved for both state machines",
        durationsExpress=result.fast.samples,
        durationsStandard=result.durable.samples,
        methods={
            WorkflowVariant.FAST.value: result.fast.method,
            WorkflowVariant.DURABLE.value: result.durable.method,
        },
    )


# -------------------------
# Endpoint
# -------------------------
@router.post("/")
async def orchestrate(request: Request, services: Services = Depends(get_services)):
    """
    Dispatch `start` / `list`. Errors are rendered by the application's
    exception handlers as {message, error}.
    """
    cmd_label = "invalid"
    try:
        payload = parse_payload(await request.body())
        req = parse_request(payload)
        cmd_label = req.cmd.value
        variants = req.variants()
        services.settings.require(variants)

        if req.cmd is Command.START:
            body = await start_executions(services, variants, payload)
        else:
            body = await list_durations(services, variants)
    except StepBenchError as e:
        SB_REQUESTS.labels(cmd=cmd_label, status=str(e.status_code)).inc()
        raise
    except Exception:
        SB_REQUESTS.labels(cmd=cmd_label, status="500").inc()
        raise
    SB_REQUESTS.labels(cmd=cmd_label, status="200").inc()
    return JSONResponse(status_code=200, content=body.model_dump(mode="json", exclude_none=True))
