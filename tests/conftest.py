"""
stepbench Pytest Configuration
------------------------------

Centralized fixtures and fakes for all tests.

Features:
 - Auto-clean environment variables (no real AWS config leaks into tests)
 - Scripted fake CloudWatch Logs and Step Functions clients (no network I/O)
 - Controllable clock for in-flight execution durations
 - FastAPI TestClient with the service container overridden
"""

import os
import datetime
import itertools
import logging
from typing import Any, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from stepbench.api.orchestrator import Services, get_services
from stepbench.config import Settings
from stepbench.main import create_app
from stepbench.services.connectors.logs_connector import LogsConnector
from stepbench.services.connectors.sfn_connector import StepFunctionsConnector
from stepbench.services.durations import DurationResolver

# -----------------------------------------------------------------------------
# Logging setup for tests
# -----------------------------------------------------------------------------
LOG = logging.getLogger("stepbench.tests")
LOG.setLevel(logging.WARNING)

EXPRESS_ARN = "arn:aws:states:us-east-1:123456789012:stateMachine:express"
STANDARD_ARN = "arn:aws:states:us-east-1:123456789012:stateMachine:standard"
T0 = datetime.datetime(2026, 10, 19, 12, 0, 0, tzinfo=datetime.timezone.utc)


def client_error(code: str = "ThrottlingException", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "simulated"}}, operation)


# -----------------------------------------------------------------------------
# Global environment sanitization
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """
    Clear out variables that could change configuration during tests.
    """
    for var in list(os.environ):
        if var.startswith("STEPBENCH_"):
            monkeypatch.delenv(var, raising=False)
    for var in ("EXPRESS_STATE_MACHINE_ARN", "STANDARD_STATE_MACHINE_ARN", "AWS_PROFILE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    yield


# -----------------------------------------------------------------------------
# Fake AWS clients
# -----------------------------------------------------------------------------
class FakeLogsClient:
    """
    Scripted Logs Insights client. Every start_query gets a fresh copy of
    `script`: the sequence of get_query_results responses for that job. The
    last response repeats once the script is exhausted.
    """
    def __init__(self, script: Optional[List[Dict[str, Any]]] = None):
        self.script = script if script is not None else [complete([1200, 900])]
        self.started: List[Dict[str, Any]] = []
        self.result_calls: List[str] = []
        self.stopped: List[str] = []
        self.error_on_results: Optional[Exception] = None
        self._ids = itertools.count(1)
        self._jobs: Dict[str, List[Dict[str, Any]]] = {}

    @property
    def calls(self) -> int:
        return len(self.started) + len(self.result_calls) + len(self.stopped)

    def start_query(self, **kwargs):
        query_id = f"q-{next(self._ids)}"
        self.started.append(kwargs)
        self._jobs[query_id] = list(self.script)
        return {"queryId": query_id}

    def get_query_results(self, queryId):
        self.result_calls.append(queryId)
        if self.error_on_results is not None:
            raise self.error_on_results
        job = self._jobs[queryId]
        return job.pop(0) if len(job) > 1 else job[0]

    def stop_query(self, queryId):
        self.stopped.append(queryId)
        return {"success": True}


def status(state: str, durations: Optional[List[int]] = None) -> Dict[str, Any]:
    rows = [[{"field": "duration_milliseconds", "value": str(d)}] for d in (durations or [])]
    return {"status": state, "results": rows}


def complete(durations: List[int]) -> Dict[str, Any]:
    return status("Complete", durations)


class FakeSfnClient:
    def __init__(self, executions: Optional[List[Dict[str, Any]]] = None):
        self.executions = executions if executions is not None else []
        self.start_calls: List[Dict[str, Any]] = []
        self.list_calls: List[Dict[str, Any]] = []
        self.fail_for: Optional[str] = None
        self._ids = itertools.count(1)

    @property
    def calls(self) -> int:
        return len(self.start_calls) + len(self.list_calls)

    def start_execution(self, stateMachineArn, input):
        self.start_calls.append({"stateMachineArn": stateMachineArn, "input": input})
        if self.fail_for == stateMachineArn:
            raise client_error("ExecutionLimitExceeded", "StartExecution")
        return {"executionArn": f"{stateMachineArn.replace(':stateMachine:', ':execution:')}:run-{next(self._ids)}", "startDate": T0}

    def list_executions(self, stateMachineArn, maxResults):
        self.list_calls.append({"stateMachineArn": stateMachineArn, "maxResults": maxResults})
        return {"executions": self.executions[:maxResults]}


def execution(start_offset_ms: int, duration_ms: Optional[int], name: str = "run") -> Dict[str, Any]:
    start = T0 + datetime.timedelta(milliseconds=start_offset_ms)
    item = {"executionArn": f"{STANDARD_ARN}:{name}", "name": name, "startDate": start,
            "status": "SUCCEEDED" if duration_ms is not None else "RUNNING"}
    if duration_ms is not None:
        item["stopDate"] = start + datetime.timedelta(milliseconds=duration_ms)
    return item


class FakeClock:
    def __init__(self, now: datetime.datetime):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, ms: int):
        self.now = self.now + datetime.timedelta(milliseconds=ms)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def settings() -> Settings:
    return Settings(
        express_state_machine_arn=EXPRESS_ARN,
        standard_state_machine_arn=STANDARD_ARN,
        query_poll_interval=0.0,
        query_max_polls=10,
        query_deadline_seconds=30.0,
    )


@pytest.fixture
def logs_client() -> FakeLogsClient:
    return FakeLogsClient()


@pytest.fixture
def sfn_client() -> FakeSfnClient:
    return FakeSfnClient([
        execution(5000, 400, "c"),
        execution(3000, 650, "b"),
        execution(0, 1100, "a"),
    ])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0 + datetime.timedelta(seconds=10))


@pytest.fixture
def services(settings, logs_client, sfn_client, clock) -> Services:
    logs = LogsConnector.from_settings(settings, client=logs_client)
    sfn = StepFunctionsConnector.from_settings(settings, client=sfn_client, clock=clock)
    return Services(settings=settings, sfn=sfn, resolver=DurationResolver(settings, logs, sfn))


@pytest.fixture
def api(services):
    app = create_app()
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
