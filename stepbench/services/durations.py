# stepbench/services/durations.py
"""
Duration resolver: one comparable result set from two retrieval strategies.

  FAST    -> log-mined durations (CloudWatch Logs Insights aggregation)
  DURABLE -> list-reported durations (Step Functions ListExecutions)

When both variants are requested the retrievals run concurrently and are not
paired; each reflects its own source as of a slightly different instant. The
log channel lags the list channel by the log delivery delay.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List

from stepbench.config import Settings
from stepbench.metrics import time_retrieval
from stepbench.models import ComparisonResult, DurationSeries, RetrievalMethod, WorkflowVariant
from stepbench.services.connectors.logs_connector import LogsConnector
from stepbench.services.connectors.sfn_connector import StepFunctionsConnector
from stepbench.utils.logger import get_logger

LOG = get_logger("stepbench.durations")

METHODS = {
    WorkflowVariant.FAST: RetrievalMethod.LOG_QUERY,
    WorkflowVariant.DURABLE: RetrievalMethod.EXECUTION_LIST,
}


class DurationResolver:
    def __init__(self, settings: Settings, logs: LogsConnector, sfn: StepFunctionsConnector):
        self.settings = settings
        self.logs = logs
        self.sfn = sfn

    async def _retrieve(self, variant: WorkflowVariant) -> List[int]:
        if variant is WorkflowVariant.FAST:
            return await self.logs.fetch_recent_durations(self.settings.express_log_group)
        if variant is WorkflowVariant.DURABLE:
            return await self.sfn.recent_durations_async(self.settings.state_machine_arn(variant))
        raise AssertionError(f"unhandled variant {variant!r}")

    async def resolve_one(self, variant: WorkflowVariant) -> DurationSeries:
        with time_retrieval(variant.value):
            samples = await self._retrieve(variant)
        LOG.debug("%s durations: %s", variant.value, samples)
        return DurationSeries(variant=variant, method=METHODS[variant], samples=samples)

    async def resolve(self, variants: Iterable[WorkflowVariant]) -> ComparisonResult:
        variants = tuple(dict.fromkeys(variants))
        series = await asyncio.gather(*(self.resolve_one(v) for v in variants))
        by_variant = {s.variant: s for s in series}
        return ComparisonResult(
            fast=by_variant.get(WorkflowVariant.FAST),
            durable=by_variant.get(WorkflowVariant.DURABLE),
        )
