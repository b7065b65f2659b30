# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from loguru import logger

from contract_sandbox.config import SandboxConfig
from contract_sandbox.errors import SandboxOperationalError
from contract_sandbox.factory import SandboxFactory
from contract_sandbox.models import ExecutionResult, Mount, SandboxInvocation, Workspace
from contract_sandbox.runtime import SandboxRuntime


class SandboxInvoker:
    """Maps a staged workspace into the sandbox and runs its tests.

    Container-side paths come from configuration; the only request-derived
    value that reaches them is the sanitized entry identifier.
    """

    def __init__(self, config: SandboxConfig, runtime: SandboxRuntime | None = None):
        """Initializes the SandboxInvoker.

        Args:
            config: Sandbox configuration (image, layout, limits).
            runtime: Runtime strategy; built from ``config`` when omitted.
        """
        self.config = config
        self.runtime = runtime or SandboxFactory.get_runtime(config)

    def build_invocation(self, workspace: Workspace, entry_identifier: str) -> SandboxInvocation:
        """Construct mounts and argument vector for one workspace.

        Raises:
            SandboxOperationalError: If the workspace has not been staged.
        """
        if workspace.contract_file_path is None or workspace.test_file_path is None:
            raise SandboxOperationalError("workspace has no staged artifacts")

        contract_target = self.config.contract_mount_template.format(entry=entry_identifier)
        test_target = self.config.test_mount_path
        return SandboxInvocation(
            name=f"contract-sandbox-{workspace.root_path.name}",
            image=self.config.docker_image,
            command=[*self.config.test_command, test_target],
            working_directory=self.config.container_workdir,
            mounts=[
                Mount(host_path=workspace.contract_file_path.resolve(), container_path=contract_target),
                Mount(host_path=workspace.test_file_path.resolve(), container_path=test_target),
            ],
            network_disabled=self.config.network_disabled,
            mem_limit=self.config.mem_limit,
            cpu_limit=self.config.cpu_limit,
        )

    async def invoke(self, workspace: Workspace, entry_identifier: str) -> ExecutionResult:
        """Run the sandbox against a staged workspace.

        Operational failures (runtime unavailable, crash, timeout) come back as
        a result with ``failed=True``; the sandboxed program's own output is
        returned untouched whatever its exit status.

        Args:
            workspace: A workspace whose artifacts have been placed.
            entry_identifier: Sanitized entry identifier.

        Returns:
            ExecutionResult: Exactly one result per call.
        """
        command = ""
        try:
            invocation = self.build_invocation(workspace, entry_identifier)
            command = invocation.display(self.runtime.cli)
            result = await self.runtime.run(invocation, timeout=self.config.execution_timeout)
        except SandboxOperationalError as e:
            logger.error(f"Sandbox error for entry {entry_identifier}: {e}")
            return ExecutionResult(failed=True, failure_reason=str(e), command=command)

        logger.info(
            f"Sandbox finished for entry {entry_identifier} "
            f"(exit code {result.exit_code}, {result.execution_duration:.2f}s)"
        )
        return result
