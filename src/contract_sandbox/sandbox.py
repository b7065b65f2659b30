# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import anyio

from contract_sandbox.config import SandboxConfig
from contract_sandbox.models import ExecutionRequest, RunResponse
from contract_sandbox.runtime import SandboxRuntime
from contract_sandbox.service import HEALTH_PAYLOAD, ContractRunService


class ContractSandbox:
    """Sync Facade for ContractRunService (The Facade).

    Each call runs a fresh service inside ``anyio.run``, so the execution log
    is fully written before the call returns.
    """

    def __init__(self, config: SandboxConfig | None = None, runtime: SandboxRuntime | None = None):
        """Initializes the ContractSandbox facade.

        Args:
            config: Configuration for the service.
            runtime: Optional sandbox runtime override.
        """
        self.config = config or SandboxConfig()
        self.runtime = runtime

    async def _run(self, request: ExecutionRequest) -> RunResponse:
        async with ContractRunService(self.config, runtime=self.runtime) as service:
            return await service.handle(request)

    def run(self, contract_code: str, test_code: str, entry_name: str) -> RunResponse:
        """Runs a contract against its tests synchronously.

        Args:
            contract_code: Contract source text.
            test_code: Test source text.
            entry_name: Entry name for the contract file.

        Returns:
            RunResponse: The response body and status code.
        """
        request = ExecutionRequest(contract_code=contract_code, test_code=test_code, entry_name=entry_name)
        return anyio.run(self._run, request)

    def health_check(self) -> dict[str, str]:
        """Liveness probe."""
        return dict(HEALTH_PAYLOAD)
