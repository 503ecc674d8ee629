"""
stepbench Step Functions Connector — Test Suite
-----------------------------------------------

Validates:
 - start_execution forwards the raw payload as JSON input
 - list-based durations, engine order preserved, no status filtering
 - in-flight executions measured against the clock (growing between calls)
 - inconsistent records (stop < start) dropped
"""

import json
import datetime

import boto3
import pytest
from botocore.stub import Stubber

from stepbench.services.connectors.sfn_connector import StepFunctionsConnector, execution_duration_ms

from conftest import STANDARD_ARN, T0, FakeClock, FakeSfnClient, execution


def test_start_execution_forwards_payload_as_json(sfn_client):
    conn = StepFunctionsConnector(client=sfn_client)
    payload = {"cmd": "start", "stateMachine": "STANDARD", "note": "hello"}

    arn = conn.start_execution(STANDARD_ARN, payload)

    assert arn.startswith("arn:aws:states:us-east-1:123456789012:execution:standard")
    sent = sfn_client.start_calls[0]
    assert sent["stateMachineArn"] == STANDARD_ARN
    assert json.loads(sent["input"]) == payload


def test_start_execution_error_propagates():
    fake = FakeSfnClient()
    fake.fail_for = STANDARD_ARN
    conn = StepFunctionsConnector(client=fake)
    with pytest.raises(Exception) as info:
        conn.start_execution(STANDARD_ARN, {})
    assert info.value.response["Error"]["Code"] == "ExecutionLimitExceeded"


def test_recent_durations_keep_engine_order(sfn_client, clock):
    conn = StepFunctionsConnector(client=sfn_client, clock=clock)

    assert conn.recent_durations(STANDARD_ARN) == [400, 650, 1100]
    assert sfn_client.list_calls == [{"stateMachineArn": STANDARD_ARN, "maxResults": 10}]


def test_failed_executions_still_count(clock):
    failed = execution(0, 250, "failed")
    failed["status"] = "FAILED"
    conn = StepFunctionsConnector(client=FakeSfnClient([failed]), clock=clock)

    assert conn.recent_durations(STANDARD_ARN) == [250]


def test_running_execution_grows_with_clock():
    clock = FakeClock(T0 + datetime.timedelta(seconds=2))
    fake = FakeSfnClient([execution(1500, None, "running"), execution(1000, 300, "done"), execution(0, 700, "old")])
    conn = StepFunctionsConnector(client=fake, clock=clock)

    first = conn.recent_durations(STANDARD_ARN)
    clock.advance(15)
    second = conn.recent_durations(STANDARD_ARN)

    assert len(first) == 3
    assert first[0] == 500
    assert second[0] > first[0]
    assert first[1:] == second[1:] == [300, 700]


def test_inconsistent_execution_is_dropped(clock):
    bad = execution(0, 100, "bad")
    bad["stopDate"] = bad["startDate"] - datetime.timedelta(milliseconds=5)
    conn = StepFunctionsConnector(client=FakeSfnClient([bad, execution(0, 40, "ok")]), clock=clock)

    assert conn.recent_durations(STANDARD_ARN) == [40]


def test_execution_duration_handles_naive_datetimes():
    start = datetime.datetime(2026, 1, 1, 0, 0, 0)
    item = {"startDate": start, "stopDate": start + datetime.timedelta(seconds=1, milliseconds=5)}
    assert execution_duration_ms(item, T0) == 1005


@pytest.mark.asyncio
async def test_async_wrappers_run_off_loop(sfn_client, clock):
    conn = StepFunctionsConnector(client=sfn_client, clock=clock)
    arn = await conn.start_execution_async(STANDARD_ARN, {"cmd": "start"})
    durations = await conn.recent_durations_async(STANDARD_ARN)
    assert arn
    assert durations == [400, 650, 1100]


def test_real_client_list_executions_with_stubber(clock):
    client = boto3.client("stepfunctions", region_name="us-east-1")
    stubber = Stubber(client)
    stubber.add_response(
        "list_executions",
        {
            "executions": [
                {
                    "executionArn": f"{STANDARD_ARN}:x",
                    "stateMachineArn": STANDARD_ARN,
                    "name": "x",
                    "status": "SUCCEEDED",
                    "startDate": T0,
                    "stopDate": T0 + datetime.timedelta(milliseconds=321),
                }
            ]
        },
        {"stateMachineArn": STANDARD_ARN, "maxResults": 10},
    )
    with stubber:
        assert StepFunctionsConnector(client=client, clock=clock).recent_durations(STANDARD_ARN) == [321]
