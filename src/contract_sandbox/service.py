# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

from loguru import logger

from contract_sandbox.config import SandboxConfig
from contract_sandbox.errors import StagingError, ValidationError
from contract_sandbox.execution_log import ExecutionLogger
from contract_sandbox.invoker import SandboxInvoker
from contract_sandbox.models import ExecutionRequest, ExecutionResult, LogRecord, RunResponse, Workspace
from contract_sandbox.runtime import SandboxRuntime
from contract_sandbox.validation import validate_request
from contract_sandbox.workspace import WorkspaceManager

HEALTH_PAYLOAD = {"status": "OK", "message": "Backend server is running"}


class RunState(str, Enum):
    VALIDATING = "validating"
    STAGING = "staging"
    EXECUTING = "executing"
    FAILED = "failed"
    LOGGING = "logging"
    CLEANING_UP = "cleaning_up"
    RESPONDING = "responding"


@dataclass
class _Run:
    """Mutable bookkeeping for one request while it moves through the pipeline."""

    entry_identifier: str
    state: RunState = RunState.VALIDATING
    workspace_path: str | None = None
    result: ExecutionResult | None = None
    failure_reason: str | None = None
    response: RunResponse | None = None

    def transition(self, state: RunState) -> None:
        logger.debug(f"Entry {self.entry_identifier}: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, reason: str, body: str) -> None:
        self.transition(RunState.FAILED)
        self.failure_reason = reason
        self.response = RunResponse(body=body, status_code=500)


class ContractRunService:
    """Async-native request orchestrator (The Core).

    Drives validation, staging, sandbox execution, execution logging and
    cleanup for each request. Every call to ``handle`` returns a response;
    every workspace it allocates is gone before the response is returned.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        runtime: SandboxRuntime | None = None,
        execution_log: ExecutionLogger | None = None,
    ):
        """Initializes the ContractRunService.

        Args:
            config: Configuration for the service.
            runtime: Optional sandbox runtime; built from ``config`` when omitted.
            execution_log: Optional execution logger; built from ``config`` when omitted.
        """
        self.config = config or SandboxConfig()
        self.workspaces = WorkspaceManager(
            temp_root=self.config.temp_root,
            test_filename=self.config.test_filename,
            artifact_extension=self.config.artifact_extension,
        )
        self.invoker = SandboxInvoker(self.config, runtime)
        self.execution_log = execution_log or ExecutionLogger(self.config.execution_log_path)
        # The contract may take neither the staged nor the mounted test file name.
        self.reserved_filenames = frozenset(
            {self.config.test_filename, PurePosixPath(self.config.test_mount_path).name}
        )

    async def __aenter__(self) -> "ContractRunService":
        """Starts the execution log writer."""
        await self.execution_log.start()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Drains the execution log and removes any workspace still on disk."""
        await self.execution_log.stop()
        self.workspaces.release_all()

    def health_check(self) -> dict[str, str]:
        """Liveness probe. Touches neither the filesystem nor the sandbox."""
        return dict(HEALTH_PAYLOAD)

    async def handle(self, request: ExecutionRequest) -> RunResponse:
        """Run one request through the pipeline.

        Args:
            request: The inbound request.

        Returns:
            RunResponse: 200 with the sandbox's stdout followed by its stderr,
            400 for invalid requests, 500 for staging or operational failures.
        """
        try:
            entry_identifier = validate_request(
                request,
                max_artifact_bytes=self.config.max_artifact_bytes,
                reserved_filenames=self.reserved_filenames,
                artifact_extension=self.config.artifact_extension,
            )
        except ValidationError as e:
            logger.warning(f"Rejected request: {e}")
            return RunResponse(body=str(e), status_code=400)

        run = _Run(entry_identifier=entry_identifier)
        run.transition(RunState.STAGING)
        try:
            async with self.workspaces.acquire() as workspace:
                run.workspace_path = str(workspace.root_path)
                await self._stage_and_execute(run, workspace, request)
                await self._log(run)
                run.transition(RunState.CLEANING_UP)
        except StagingError as e:
            # Allocation failed, so there is nothing to clean up.
            run.fail(str(e), f"Server error: {e}")
            await self._log(run)

        run.transition(RunState.RESPONDING)
        if run.response is None:
            logger.error(f"Entry {entry_identifier}: pipeline finished without a response")
            return RunResponse(body="Server error: no response produced", status_code=500)
        return run.response

    async def _stage_and_execute(self, run: _Run, workspace: Workspace, request: ExecutionRequest) -> None:
        try:
            await self.workspaces.place(
                workspace,
                request.contract_code or "",
                request.test_code or "",
                run.entry_identifier,
            )
        except StagingError as e:
            run.fail(str(e), f"Server error: {e}")
            return

        run.transition(RunState.EXECUTING)
        try:
            result = await self.invoker.invoke(workspace, run.entry_identifier)
        except Exception as e:
            logger.exception(f"Unexpected error while executing entry {run.entry_identifier}")
            run.fail(str(e), f"Server error: {e}")
            return

        run.result = result
        if result.failed:
            reason = result.failure_reason or "unknown sandbox failure"
            run.fail(reason, f"Sandbox execution error: {reason}")
        else:
            run.response = RunResponse(body=result.combined_output, status_code=200)

    async def _log(self, run: _Run) -> None:
        run.transition(RunState.LOGGING)
        result = run.result or ExecutionResult()
        log_record = LogRecord(
            command=result.command,
            entry_identifier=run.entry_identifier,
            workspace_path=run.workspace_path,
            stdout=result.stdout,
            stderr=result.stderr,
            failure_reason=run.failure_reason,
            exit_code=result.exit_code,
            execution_duration=result.execution_duration,
        )
        try:
            await self.execution_log.record(log_record)
        except Exception as e:
            logger.warning(f"Failed to submit execution log record for {run.entry_identifier}: {e}")
