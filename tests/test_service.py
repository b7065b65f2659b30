# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from contract_sandbox.config import SandboxConfig
from contract_sandbox.errors import SandboxOperationalError, StagingError
from contract_sandbox.models import ExecutionRequest, ExecutionResult, SandboxInvocation
from contract_sandbox.service import HEALTH_PAYLOAD, ContractRunService

DEMO = ExecutionRequest(
    contractCode="def add(a, b):\n    return a + b\n",
    testCode="from demo_contract import add\n\ndef test_add():\n    assert add(1, 2) == 3\n",
    entryName="demo-contract",
)


def _workspaces(config: SandboxConfig) -> list[Path]:
    if not config.temp_root.exists():
        return []
    return list(config.temp_root.iterdir())


async def _records(service: ContractRunService, read_log_lines: Any) -> list[dict[str, Any]]:
    await service.execution_log.flush()
    return [json.loads(line) for line in read_log_lines(service.config.execution_log_path)]


@pytest.mark.asyncio
async def test_successful_run(config: SandboxConfig, mock_runtime: Any, read_log_lines: Any) -> None:
    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)

        assert response.status_code == 200
        assert response.body == "1 passed\nwarning: deprecated\n"
        assert _workspaces(config) == []
        assert service.workspaces.live_workspaces == set()

        records = await _records(service, read_log_lines)
        assert len(records) == 1
        assert records[0]["entry_identifier"] == "demo_contract"
        assert records[0]["stdout"] == "1 passed\n"
        assert records[0]["stderr"] == "warning: deprecated\n"
        assert records[0]["failure_reason"] is None
        assert records[0]["command"] == "docker run --rm sandbox"
        assert records[0]["workspace_path"].startswith(str(config.temp_root))


@pytest.mark.asyncio
async def test_artifacts_are_staged_verbatim(config: SandboxConfig, mock_runtime: Any) -> None:
    seen: dict[str, str] = {}

    async def fake_run(invocation: SandboxInvocation, timeout: float) -> ExecutionResult:
        for mount in invocation.mounts:
            seen[mount.container_path] = mount.host_path.read_text(encoding="utf-8")
        return ExecutionResult(stdout="ok\n", exit_code=0)

    mock_runtime.run.side_effect = fake_run
    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)

    assert response.status_code == 200
    assert seen == {
        "/sandbox/tests/demo_contract.py": DEMO.contract_code,
        "/sandbox/tests/test_contract.py": DEMO.test_code,
    }


@pytest.mark.asyncio
async def test_failing_tests_still_return_200(config: SandboxConfig, mock_runtime: Any) -> None:
    mock_runtime.run.return_value = ExecutionResult(stdout="1 failed\n", stderr="", exit_code=1)

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)

    assert response.status_code == 200
    assert response.body == "1 failed\n"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, message",
    [
        ({"testCode": "t", "entryName": "demo"}, "Missing required fields: contractCode"),
        ({"contractCode": "", "testCode": "t", "entryName": "demo"}, "Missing required fields: contractCode"),
        ({}, "Missing required fields: contractCode, testCode, entryName"),
        ({"contractCode": "c", "testCode": "t", "entryName": "../../etc/passwd"}, "Invalid entryName"),
    ],
)
async def test_invalid_requests_have_no_side_effects(
    config: SandboxConfig, mock_runtime: Any, payload: dict[str, str], message: str
) -> None:
    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(ExecutionRequest(**payload))

    assert response.status_code == 400
    assert response.body.startswith(message)
    assert _workspaces(config) == []
    assert not config.execution_log_path.exists()
    mock_runtime.run.assert_not_called()


@pytest.mark.asyncio
async def test_oversized_artifact_rejected(config: SandboxConfig, mock_runtime: Any) -> None:
    config = config.model_copy(update={"max_artifact_bytes": 10})

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)

    assert response.status_code == 400
    assert response.body == "contractCode exceeds the maximum size of 10 bytes"


@pytest.mark.asyncio
async def test_operational_failure(config: SandboxConfig, mock_runtime: Any, read_log_lines: Any) -> None:
    mock_runtime.run.side_effect = SandboxOperationalError("container runtime unavailable: no daemon")

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)
        records = await _records(service, read_log_lines)

    assert response.status_code == 500
    assert response.body == "Sandbox execution error: container runtime unavailable: no daemon"
    assert _workspaces(config) == []
    assert records[0]["failure_reason"] == "container runtime unavailable: no daemon"


@pytest.mark.asyncio
async def test_staging_failure(config: SandboxConfig, mock_runtime: Any, read_log_lines: Any) -> None:
    async with ContractRunService(config, runtime=mock_runtime) as service:
        with patch.object(service.workspaces, "place", AsyncMock(side_effect=StagingError("disk full"))):
            response = await service.handle(DEMO)
        records = await _records(service, read_log_lines)

    assert response.status_code == 500
    assert response.body == "Server error: disk full"
    assert _workspaces(config) == []
    mock_runtime.run.assert_not_called()
    assert records[0]["failure_reason"] == "disk full"


@pytest.mark.asyncio
async def test_allocation_failure(config: SandboxConfig, mock_runtime: Any, read_log_lines: Any) -> None:
    config.temp_root.parent.mkdir(parents=True, exist_ok=True)
    config.temp_root.write_text("not a directory")

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)
        records = await _records(service, read_log_lines)

    assert response.status_code == 500
    assert response.body.startswith("Server error: Failed to create workspace")
    assert records[0]["workspace_path"] is None
    mock_runtime.run.assert_not_called()


@pytest.mark.asyncio
async def test_unexpected_error_still_cleans_up(config: SandboxConfig, mock_runtime: Any) -> None:
    mock_runtime.run.side_effect = RuntimeError("boom")

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)

    assert response.status_code == 500
    assert response.body == "Server error: boom"
    assert _workspaces(config) == []


@pytest.mark.asyncio
async def test_concurrent_same_entry_requests_are_isolated(config: SandboxConfig, mock_runtime: Any) -> None:
    arrived: list[SandboxInvocation] = []
    both_running = asyncio.Event()

    async def fake_run(invocation: SandboxInvocation, timeout: float) -> ExecutionResult:
        arrived.append(invocation)
        if len(arrived) == 2:
            both_running.set()
        await asyncio.wait_for(both_running.wait(), timeout=2)
        contract_dir = invocation.mounts[0].host_path.parent
        return ExecutionResult(
            stdout=invocation.mounts[0].host_path.read_text(encoding="utf-8"),
            stderr=",".join(sorted(p.name for p in contract_dir.iterdir())),
            exit_code=0,
        )

    mock_runtime.run.side_effect = fake_run
    first = DEMO.model_copy(update={"contract_code": "VALUE = 1\n"})
    second = DEMO.model_copy(update={"contract_code": "VALUE = 2\n"})

    async with ContractRunService(config, runtime=mock_runtime) as service:
        responses = await asyncio.gather(service.handle(first), service.handle(second))

    assert [r.status_code for r in responses] == [200, 200]
    assert responses[0].body == "VALUE = 1\ndemo_contract.py,test_contract.py"
    assert responses[1].body == "VALUE = 2\ndemo_contract.py,test_contract.py"
    assert arrived[0].name != arrived[1].name
    assert arrived[0].mounts[0].host_path.parent != arrived[1].mounts[0].host_path.parent
    assert _workspaces(config) == []


@pytest.mark.asyncio
async def test_timeout_with_cli_runtime(config: SandboxConfig, make_cli: Any, read_log_lines: Any) -> None:
    cli = make_cli('if [ "$1" = kill ]; then exit 0; fi\nsleep 30')
    config = config.model_copy(
        update={"runtime": "cli", "container_cli": str(cli), "execution_timeout": 0.5, "kill_timeout": 1.0}
    )

    async with ContractRunService(config) as service:
        response = await service.handle(DEMO)
        records = await _records(service, read_log_lines)

    assert response.status_code == 500
    assert response.body == "Sandbox execution error: execution timed out"
    assert _workspaces(config) == []
    assert records[0]["failure_reason"] == "execution timed out"
    assert records[0]["command"].startswith(f"{cli} run --rm")


@pytest.mark.asyncio
async def test_exit_releases_leftover_workspaces(config: SandboxConfig, mock_runtime: Any) -> None:
    async with ContractRunService(config, runtime=mock_runtime) as service:
        leftover = service.workspaces.allocate()
        assert leftover.root_path.exists()

    assert not leftover.root_path.exists()
    assert not service.execution_log.running


@pytest.mark.asyncio
async def test_health_check_has_no_side_effects(config: SandboxConfig, mock_runtime: Any) -> None:
    service = ContractRunService(config, runtime=mock_runtime)

    assert service.health_check() == HEALTH_PAYLOAD
    assert service.health_check() is not HEALTH_PAYLOAD
    assert not config.temp_root.exists()
    mock_runtime.run.assert_not_called()


@pytest.mark.asyncio
async def test_execution_log_failure_does_not_change_response(config: SandboxConfig, mock_runtime: Any) -> None:
    config.execution_log_path.mkdir(parents=True)

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(DEMO)
        await service.execution_log.flush()

    assert response.status_code == 200
    assert service.execution_log.failures == 1
    assert _workspaces(config) == []


@pytest.mark.asyncio
async def test_unencodable_artifact_is_a_bad_request(config: SandboxConfig, mock_runtime: Any) -> None:
    payload = json.loads('{"contractCode": "x = \\"\\ud800\\"", "testCode": "t", "entryName": "demo"}')

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(ExecutionRequest(**payload))

    assert response.status_code == 400
    assert response.body == "contractCode is not valid UTF-8 text"
    assert _workspaces(config) == []
    assert not config.execution_log_path.exists()


@pytest.mark.asyncio
async def test_entry_named_like_test_file_is_a_bad_request(config: SandboxConfig, mock_runtime: Any) -> None:
    request = ExecutionRequest(contractCode="x = 1", testCode="t", entryName="test_contract")

    async with ContractRunService(config, runtime=mock_runtime) as service:
        response = await service.handle(request)

    assert response.status_code == 400
    assert response.body == "Invalid entryName: 'test_contract' is reserved for the test file"
    assert _workspaces(config) == []
    mock_runtime.run.assert_not_called()


@pytest.mark.asyncio
async def test_pipeline_without_response_returns_server_error(config: SandboxConfig, mock_runtime: Any) -> None:
    async with ContractRunService(config, runtime=mock_runtime) as service:
        with patch.object(service, "_stage_and_execute", AsyncMock(return_value=None)):
            response = await service.handle(DEMO)

    assert response.status_code == 500
    assert response.body == "Server error: no response produced"
    assert _workspaces(config) == []
