# stepbench/services/connectors/logs_connector.py
"""
stepbench CloudWatch Logs Connector

Recovers the durations of the most recent fast-variant executions by mining
their vended execution logs with a Logs Insights aggregation query.

Features:
 - Lazy boto3 "logs" client (credential resolution via boto3 defaults)
 - Thin sync wrappers over StartQuery / GetQueryResults / StopQuery
 - Async driver: submit, poll at a fixed interval, fetch results
 - Poll loop bounded by a max poll count and a wall-clock deadline
 - Jobs abandoned on timeout or transport error are stopped best-effort
 - Prometheus counters for polls, terminal states and timeouts

Semantics:
 - Non-Complete terminal states (Failed/Cancelled/Timeout/Unknown) yield []
   and are logged; callers cannot tell them apart from an empty window.
 - botocore errors are logged and re-raised.
"""

from __future__ import annotations

import asyncio
import threading
import contextlib
from typing import Any, Awaitable, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stepbench.errors import QueryTimeoutError
from stepbench.metrics import SB_EXTERNAL_ERRORS, SB_QUERY_OUTCOMES, SB_QUERY_POLLS, SB_QUERY_TIMEOUTS
from stepbench.models import MAX_SAMPLES, QueryJobState
from stepbench.utils.common import run_in_executor
from stepbench.utils.logger import get_logger
from stepbench.utils.time_utils import Deadline, lookback_window

LOG = get_logger("stepbench.connectors.logs")

DURATION_FIELD = "duration_milliseconds"

# One row per execution: first and last event timestamps, newest executions first.
DURATION_QUERY_TEMPLATE = """
fields @timestamp, execution_arn, id, event_timestamp
| stats min(event_timestamp) as start_time, max(event_timestamp) as end_time by execution_arn
| sort end_time desc
| limit {limit}
| display (end_time - start_time) as {field}
"""

SleepFn = Callable[[float], Awaitable[Any]]


def build_duration_query(limit: int = MAX_SAMPLES) -> str:
    if not 1 <= limit <= MAX_SAMPLES:
        raise ValueError(f"limit must be within 1..{MAX_SAMPLES}")
    return DURATION_QUERY_TEMPLATE.format(limit=limit, field=DURATION_FIELD).strip()


def row_duration_ms(row: List[Dict[str, str]]) -> Optional[int]:
    """
    Extract the single numeric column of a Logs Insights result row.
    Rows are lists of {"field": ..., "value": ...} cells.
    """
    if not row:
        return None
    raw = None
    for cell in row:
        if cell.get("field") == DURATION_FIELD:
            raw = cell.get("value")
            break
    else:
        raw = row[0].get("value")
    if raw is None or raw == "":
        return None
    return int(round(float(raw)))


class LogsConnector:
    """
    CloudWatch Logs Insights connector.

    Example:
        conn = LogsConnector(region_name="us-east-1")
        durations = await conn.fetch_recent_durations("/aws/vendedlogs/states/express-state-machine")
    """

    def __init__(
        self,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        client: Any = None,
        poll_interval: float = 1.0,
        max_polls: int = 120,
        deadline_seconds: Optional[float] = 120.0,
        lookback_hours: float = 24.0,
        limit: int = MAX_SAMPLES,
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_polls < 1:
            raise ValueError("max_polls must be >= 1")
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.poll_interval = float(poll_interval)
        self.max_polls = int(max_polls)
        self.deadline_seconds = deadline_seconds
        self.lookback_hours = float(lookback_hours)
        self.limit = int(limit)
        self._sleep = sleep
        self._client = client
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, client: Any = None, **kwargs) -> "LogsConnector":
        return cls(
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            client=client,
            poll_interval=settings.query_poll_interval,
            max_polls=settings.query_max_polls,
            deadline_seconds=settings.query_deadline_seconds,
            lookback_hours=settings.query_lookback_hours,
            limit=settings.sample_limit,
            **kwargs,
        )

    # -------------------------
    # Lazy client creation
    # -------------------------
    def _ensure_client(self):
        if self._client is not None:
            return self._client
        with self._lock:
            if self._client is None:
                self._client = boto3.client("logs", region_name=self.region_name, endpoint_url=self.endpoint_url)
                LOG.info("Initialized boto3 logs client (endpoint=%s region=%s)", self.endpoint_url, self.region_name)
            return self._client

    # -------------------------
    # Sync primitives
    # -------------------------
    def start_query(self, log_group: str, start_time: int, end_time: int, query_string: str) -> str:
        if end_time < start_time:
            raise ValueError("query window end must be >= start")
        client = self._ensure_client()
        try:
            resp = client.start_query(
                logGroupName=log_group,
                startTime=start_time,
                endTime=end_time,
                queryString=query_string,
            )
        except (ClientError, BotoCoreError):
            SB_EXTERNAL_ERRORS.labels(service="logs", operation="StartQuery").inc()
            LOG.exception("start_query failed for %s", log_group)
            raise
        query_id = resp["queryId"]
        LOG.info("Submitted log query %s on %s window=[%d, %d]", query_id, log_group, start_time, end_time)
        return query_id

    def get_query_results(self, query_id: str) -> Dict[str, Any]:
        client = self._ensure_client()
        try:
            return client.get_query_results(queryId=query_id)
        except (ClientError, BotoCoreError):
            SB_EXTERNAL_ERRORS.labels(service="logs", operation="GetQueryResults").inc()
            LOG.exception("get_query_results failed for %s", query_id)
            raise

    def stop_query(self, query_id: str) -> bool:
        client = self._ensure_client()
        resp = client.stop_query(queryId=query_id)
        return bool(resp.get("success", False))

    # -------------------------
    # Async driver
    # -------------------------
    async def _stop_quietly(self, query_id: str):
        try:
            stopped = await run_in_executor(self.stop_query, query_id)
            LOG.info("Stopped abandoned log query %s (success=%s)", query_id, stopped)
        except (ClientError, BotoCoreError) as e:
            # the job may already be terminal; nothing else to release
            LOG.warning("stop_query failed for %s: %s", query_id, e)

    @contextlib.asynccontextmanager
    async def submitted_query(self, log_group: str, query_string: str):
        """
        Submit a query over the lookback window and yield its id. If the body
        exits with an error (timeout, transport, cancellation) the job is stopped.
        """
        start_time, end_time = lookback_window(self.lookback_hours)
        query_id = await run_in_executor(self.start_query, log_group, start_time, end_time, query_string)
        try:
            yield query_id
        except BaseException:
            await self._stop_quietly(query_id)
            raise

    async def wait_for_completion(self, query_id: str) -> QueryJobState:
        """
        Sleep, then check status, while the job is Scheduled or Running.
        Raises QueryTimeoutError once max_polls or the deadline is exhausted.
        """
        deadline = Deadline(self.deadline_seconds)
        polls = 0
        state = QueryJobState.SCHEDULED
        while True:
            if polls >= self.max_polls or deadline.expired():
                SB_QUERY_TIMEOUTS.inc()
                LOG.error("Log query %s timed out after %d polls (%.1fs, last=%s)", query_id, polls, deadline.elapsed(), state.value)
                raise QueryTimeoutError(query_id, polls, deadline.elapsed(), state.value)
            await self._sleep(self.poll_interval)
            resp = await run_in_executor(self.get_query_results, query_id)
            polls += 1
            SB_QUERY_POLLS.inc()
            state = QueryJobState.parse(resp.get("status"))
            LOG.debug("Log query %s poll=%d status=%s", query_id, polls, state.value)
            if not state.pending:
                SB_QUERY_OUTCOMES.labels(status=state.value).inc()
                return state

    async def fetch_recent_durations(self, log_group: str) -> List[int]:
        """
        Durations (ms) of the most recently finished executions in `log_group`,
        newest first, at most `limit` values.
        """
        async with self.submitted_query(log_group, build_duration_query(self.limit)) as query_id:
            state = await self.wait_for_completion(query_id)
            if state is not QueryJobState.COMPLETE:
                LOG.error("Log query %s failed with status: %s", query_id, state.value)
                return []
            resp = await run_in_executor(self.get_query_results, query_id)

        durations: List[int] = []
        for row in resp.get("results") or []:
            value = row_duration_ms(row)
            if value is None:
                continue
            if value < 0:
                LOG.warning("Dropping negative duration %d from query %s (inconsistent log timestamps)", value, query_id)
                continue
            durations.append(value)
        LOG.info("Log query %s returned %d durations", query_id, len(durations))
        return durations
