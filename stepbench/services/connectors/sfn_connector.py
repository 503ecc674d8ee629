# stepbench/services/connectors/sfn_connector.py
"""
stepbench Step Functions Connector

 - start_execution: launch one execution with a JSON input (not idempotent; never retried)
 - list_recent: most recent execution records for a state machine, engine order
 - recent_durations: (stop or now) - start in ms for each listed execution

Executions without a stopDate are still running; their duration is measured
against wall-clock now and grows on every call until they finish. No status
filtering is applied.
"""

from __future__ import annotations

import datetime
import threading
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stepbench.metrics import SB_EXTERNAL_ERRORS
from stepbench.models import MAX_SAMPLES
from stepbench.utils.common import json_dumps, run_in_executor
from stepbench.utils.logger import get_logger
from stepbench.utils.time_utils import to_epoch_ms, utc_now

LOG = get_logger("stepbench.connectors.sfn")

Clock = Callable[[], datetime.datetime]


def execution_duration_ms(execution: Dict[str, Any], now: datetime.datetime) -> int:
    start = execution["startDate"]
    stop = execution.get("stopDate") or now
    return to_epoch_ms(stop) - to_epoch_ms(start)


class StepFunctionsConnector:
    """
    Step Functions control-plane connector.

    Example:
        conn = StepFunctionsConnector(region_name="us-east-1")
        arn = await conn.start_execution_async(state_machine_arn, {"cmd": "start"})
        durations = await conn.recent_durations_async(state_machine_arn)
    """

    def __init__(
        self,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        client: Any = None,
        limit: int = MAX_SAMPLES,
        clock: Clock = utc_now,
    ):
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.limit = int(limit)
        self._clock = clock
        self._client = client
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, client: Any = None, **kwargs) -> "StepFunctionsConnector":
        return cls(
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            client=client,
            limit=settings.sample_limit,
            **kwargs,
        )

    def _ensure_client(self):
        if self._client is not None:
            return self._client
        with self._lock:
            if self._client is None:
                self._client = boto3.client("stepfunctions", region_name=self.region_name, endpoint_url=self.endpoint_url)
                LOG.info("Initialized boto3 stepfunctions client (endpoint=%s region=%s)", self.endpoint_url, self.region_name)
            return self._client

    # -------------------------
    # Executions
    # -------------------------
    def start_execution(self, state_machine_arn: str, payload: Dict[str, Any]) -> str:
        client = self._ensure_client()
        try:
            resp = client.start_execution(stateMachineArn=state_machine_arn, input=json_dumps(payload))
        except (ClientError, BotoCoreError):
            SB_EXTERNAL_ERRORS.labels(service="stepfunctions", operation="StartExecution").inc()
            LOG.exception("start_execution failed for %s", state_machine_arn)
            raise
        execution_arn = resp["executionArn"]
        LOG.info("Started execution %s", execution_arn)
        return execution_arn

    def list_recent(self, state_machine_arn: str) -> List[Dict[str, Any]]:
        client = self._ensure_client()
        try:
            resp = client.list_executions(stateMachineArn=state_machine_arn, maxResults=self.limit)
        except (ClientError, BotoCoreError):
            SB_EXTERNAL_ERRORS.labels(service="stepfunctions", operation="ListExecutions").inc()
            LOG.exception("list_executions failed for %s", state_machine_arn)
            raise
        return resp.get("executions") or []

    def recent_durations(self, state_machine_arn: str) -> List[int]:
        executions = self.list_recent(state_machine_arn)
        now = self._clock()
        durations: List[int] = []
        for execution in executions:
            value = execution_duration_ms(execution, now)
            if value < 0:
                LOG.warning(
                    "Dropping execution %s: stopDate precedes startDate (%d ms)",
                    execution.get("executionArn"), value,
                )
                continue
            durations.append(value)
        LOG.info("Listed %d executions for %s", len(durations), state_machine_arn)
        return durations

    # -------------------------
    # Async wrappers (boto3 is blocking)
    # -------------------------
    async def start_execution_async(self, state_machine_arn: str, payload: Dict[str, Any]) -> str:
        return await run_in_executor(self.start_execution, state_machine_arn, payload)

    async def recent_durations_async(self, state_machine_arn: str) -> List[int]:
        return await run_in_executor(self.recent_durations, state_machine_arn)
