# stepbench/config.py
"""
stepbench configuration

Settings come from the process environment (optionally seeded from a `.env`
file) and are read once per process. The state machine identifiers are
deployment outputs; nothing else is required.

Environment:
  EXPRESS_STATE_MACHINE_ARN        fast variant state machine
  STANDARD_STATE_MACHINE_ARN       durable variant state machine
  STEPBENCH_EXPRESS_LOG_GROUP      log group the fast variant writes to
  STEPBENCH_AWS_REGION / AWS_REGION
  STEPBENCH_AWS_ENDPOINT           endpoint override (e.g. localstack)
  STEPBENCH_QUERY_LOOKBACK_HOURS   log query window (hours)
  STEPBENCH_QUERY_POLL_INTERVAL    seconds between status polls
  STEPBENCH_QUERY_MAX_POLLS        max status polls per query
  STEPBENCH_QUERY_DEADLINE         max seconds per query ("none" disables)
  STEPBENCH_SAMPLE_LIMIT           samples per variant (<= 10)
"""

from __future__ import annotations

import os
import functools
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from stepbench.errors import ConfigurationError, InvalidSettingsError
from stepbench.models import MAX_SAMPLES, WorkflowVariant
from stepbench.utils.logger import get_logger

LOG = get_logger("stepbench.config")

DEFAULT_EXPRESS_LOG_GROUP = "/aws/vendedlogs/states/express-state-machine"

_ARN_ENV = {
    WorkflowVariant.FAST: "EXPRESS_STATE_MACHINE_ARN",
    WorkflowVariant.DURABLE: "STANDARD_STATE_MACHINE_ARN",
}


def _optional_float(raw: Optional[str], default: Optional[float]) -> Optional[float]:
    if raw is None or raw == "":
        return default
    if raw.strip().lower() in ("none", "off"):
        return None
    return float(raw)


class Settings(BaseModel):
    express_state_machine_arn: Optional[str] = None
    standard_state_machine_arn: Optional[str] = None
    express_log_group: str = DEFAULT_EXPRESS_LOG_GROUP
    aws_region: str = "us-east-1"
    aws_endpoint_url: Optional[str] = None
    query_lookback_hours: float = Field(24.0, gt=0)
    query_poll_interval: float = Field(1.0, ge=0)
    query_max_polls: int = Field(120, ge=1)
    query_deadline_seconds: Optional[float] = Field(120.0, gt=0)
    sample_limit: int = Field(MAX_SAMPLES, ge=1, le=MAX_SAMPLES)
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("express_state_machine_arn", "standard_state_machine_arn", "aws_endpoint_url", mode="before")
    @classmethod
    def blank_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        try:
            return cls(
                express_state_machine_arn=env.get("EXPRESS_STATE_MACHINE_ARN"),
                standard_state_machine_arn=env.get("STANDARD_STATE_MACHINE_ARN"),
                express_log_group=env.get("STEPBENCH_EXPRESS_LOG_GROUP") or DEFAULT_EXPRESS_LOG_GROUP,
                aws_region=env.get("STEPBENCH_AWS_REGION") or env.get("AWS_REGION") or "us-east-1",
                aws_endpoint_url=env.get("STEPBENCH_AWS_ENDPOINT"),
                query_lookback_hours=float(env.get("STEPBENCH_QUERY_LOOKBACK_HOURS") or 24.0),
                query_poll_interval=float(env.get("STEPBENCH_QUERY_POLL_INTERVAL") or 1.0),
                query_max_polls=int(env.get("STEPBENCH_QUERY_MAX_POLLS") or 120),
                query_deadline_seconds=_optional_float(env.get("STEPBENCH_QUERY_DEADLINE"), 120.0),
                sample_limit=int(env.get("STEPBENCH_SAMPLE_LIMIT") or MAX_SAMPLES),
                host=env.get("STEPBENCH_HOST") or "0.0.0.0",
                port=int(env.get("STEPBENCH_PORT") or 8000),
            )
        except (ValueError, ValidationError) as e:
            raise InvalidSettingsError(f"invalid environment configuration: {e}") from e

    def state_machine_arn(self, variant: WorkflowVariant) -> str:
        """Resolve the ARN for `variant` or raise ConfigurationError."""
        arn = (
            self.express_state_machine_arn
            if variant is WorkflowVariant.FAST
            else self.standard_state_machine_arn
        )
        if not arn:
            raise ConfigurationError(f"{_ARN_ENV[variant]} is not set")
        return arn

    def require(self, variants) -> None:
        """Fail fast when any requested variant lacks its identifier."""
        for variant in variants:
            self.state_machine_arn(variant)

    def missing(self) -> List[str]:
        return [name for variant, name in _ARN_ENV.items() if not self._arn_or_none(variant)]

    def _arn_or_none(self, variant: WorkflowVariant) -> Optional[str]:
        try:
            return self.state_machine_arn(variant)
        except ConfigurationError:
            return None


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    load_dotenv()
    settings = Settings.from_env()
    missing = settings.missing()
    if missing:
        LOG.warning("Missing configuration: %s (affected requests will fail)", ", ".join(missing))
    else:
        LOG.info("Configuration loaded (region=%s log_group=%s)", settings.aws_region, settings.express_log_group)
    return settings
