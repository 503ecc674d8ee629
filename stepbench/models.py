# stepbench/models.py
"""
Enums & request/response schemas for the orchestration endpoint.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Hard cap on samples per variant; applied in the queries themselves.
MAX_SAMPLES = 10


# -------------------------
# Enums
# -------------------------
class WorkflowVariant(str, Enum):
    """Workflow execution mode. Wire values are the Step Functions type names."""
    FAST = "EXPRESS"       # low latency, best-effort logging
    DURABLE = "STANDARD"   # queryable execution history


class Command(str, Enum):
    START = "start"
    LIST = "list"


class QueryJobState(str, Enum):
    """CloudWatch Logs Insights query status values."""
    SCHEDULED = "Scheduled"
    RUNNING = "Running"
    COMPLETE = "Complete"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "QueryJobState":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN

    @property
    def pending(self) -> bool:
        return self in (QueryJobState.SCHEDULED, QueryJobState.RUNNING)


class RetrievalMethod(str, Enum):
    LOG_QUERY = "log_query"
    EXECUTION_LIST = "execution_list"


ALL_VARIANTS: Tuple[WorkflowVariant, ...] = (WorkflowVariant.FAST, WorkflowVariant.DURABLE)


# -------------------------
# Internal result types
# -------------------------
@dataclass(frozen=True)
class DurationSeries:
    """Most-recent-first millisecond durations for one variant."""
    variant: WorkflowVariant
    method: RetrievalMethod
    samples: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class ComparisonResult:
    fast: Optional[DurationSeries] = None
    durable: Optional[DurationSeries] = None

    def for_variant(self, variant: WorkflowVariant) -> Optional[DurationSeries]:
        return self.fast if variant is WorkflowVariant.FAST else self.durable


# -------------------------
# Wire models
# -------------------------
class OrchestrationRequest(BaseModel):
    """
    Body of POST /. Unknown keys are kept: the whole raw payload is forwarded
    to started executions as input.
    """
    model_config = ConfigDict(extra="allow")

    cmd: Command
    stateMachine: Optional[WorkflowVariant] = Field(None, description="Omit for both variants")

    def variants(self) -> Tuple[WorkflowVariant, ...]:
        return (self.stateMachine,) if self.stateMachine is not None else ALL_VARIANTS


class StartResponse(BaseModel):
    message: str
    executionArn: Optional[str] = None
    expressExecutionArn: Optional[str] = None
    standardExecutionArn: Optional[str] = None


class ListResponse(BaseModel):
    message: str
    durations: Optional[List[int]] = None
    method: Optional[RetrievalMethod] = None
    durationsExpress: Optional[List[int]] = None
    durationsStandard: Optional[List[int]] = None
    methods: Optional[Dict[str, RetrievalMethod]] = None
