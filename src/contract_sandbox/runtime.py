# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from abc import ABC, abstractmethod

from contract_sandbox.models import ExecutionResult, SandboxInvocation


class SandboxRuntime(ABC):
    """
    Abstract base class for sandbox runtimes (e.g., Docker SDK, container CLI).
    Follows the Strategy Pattern.
    """

    cli: str = "docker"

    @abstractmethod
    async def run(self, invocation: SandboxInvocation, timeout: float) -> ExecutionResult:
        """Run one disposable container and capture its output.

        The container is destroyed after the call regardless of outcome. A
        non-zero exit status of the sandboxed program is reported through
        ``exit_code`` and the captured streams, never raised.

        Args:
            invocation: Mounts, image and command for the container.
            timeout: Maximum wall-clock seconds before the container is killed.

        Returns:
            ExecutionResult: Captured stdout, stderr and exit status.

        Raises:
            SandboxTimeoutError: If the deadline expired; the container has been killed.
            SandboxOperationalError: If the runtime is unavailable or failed to run.
        """
        pass  # pragma: no cover
