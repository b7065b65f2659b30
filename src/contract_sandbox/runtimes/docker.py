import asyncio
import time
from typing import Any

import docker
from docker.errors import DockerException, NotFound
from docker.models.containers import Container
from loguru import logger

from contract_sandbox.errors import SandboxOperationalError, SandboxTimeoutError
from contract_sandbox.models import ExecutionResult, SandboxInvocation
from contract_sandbox.runtime import SandboxRuntime


class DockerRuntime(SandboxRuntime):
    """
    Docker SDK implementation of the SandboxRuntime.

    Each call starts one detached container, waits for it under a deadline,
    reads stdout and stderr separately and then force-removes it.
    """

    def __init__(self, client: docker.DockerClient | None = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        # Connect lazily so an unavailable daemon fails the request, not the service.
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                logger.error(f"Docker daemon unavailable: {e}")
                raise SandboxOperationalError(f"container runtime unavailable: {e}") from e
        return self._client

    def _run_kwargs(self, invocation: SandboxInvocation) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "command": invocation.command,
            "name": invocation.name,
            "detach": True,
            "working_dir": invocation.working_directory,
            "volumes": {
                str(mount.host_path): {
                    "bind": mount.container_path,
                    "mode": "ro" if mount.read_only else "rw",
                }
                for mount in invocation.mounts
            },
        }
        if invocation.network_disabled:
            kwargs["network_mode"] = "none"
        if invocation.mem_limit:
            kwargs["mem_limit"] = invocation.mem_limit
        if invocation.cpu_limit:
            kwargs["nano_cpus"] = int(invocation.cpu_limit * 1e9)
        return kwargs

    async def run(self, invocation: SandboxInvocation, timeout: float) -> ExecutionResult:
        """
        Start the sandbox container, wait for the tests and collect both output streams.
        """
        client = self.client
        logger.info(f"Starting sandbox container {invocation.name} with image {invocation.image}")

        start_time = time.time()
        try:
            container: Container = await asyncio.to_thread(
                client.containers.run, invocation.image, **self._run_kwargs(invocation)
            )
        except (DockerException, OSError) as e:
            logger.error(f"Failed to start sandbox container {invocation.name}: {e}")
            raise SandboxOperationalError(f"failed to start sandbox: {e}") from e

        try:
            try:
                status = await asyncio.wait_for(asyncio.to_thread(container.wait), timeout=timeout)
            except asyncio.TimeoutError as e:
                logger.warning(f"Execution timed out ({timeout}s). Killing container {container.short_id}.")
                await asyncio.to_thread(self._kill, container)
                raise SandboxTimeoutError() from e

            duration = time.time() - start_time
            stdout_bytes = await asyncio.to_thread(container.logs, stdout=True, stderr=False)
            stderr_bytes = await asyncio.to_thread(container.logs, stdout=False, stderr=True)
        except (DockerException, OSError) as e:
            logger.error(f"Execution failed in container {invocation.name}: {e}")
            raise SandboxOperationalError(f"sandbox execution failed: {e}") from e
        finally:
            await asyncio.to_thread(self._remove, container)

        return ExecutionResult(
            stdout=stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else "",
            stderr=stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else "",
            exit_code=status.get("StatusCode") if isinstance(status, dict) else None,
            execution_duration=duration,
            command=invocation.display(self.cli),
        )

    @staticmethod
    def _kill(container: Container) -> None:
        try:
            container.kill()
        except DockerException as e:
            logger.warning(f"Error killing sandbox container {container.short_id}: {e}")

    @staticmethod
    def _remove(container: Container) -> None:
        try:
            container.remove(force=True)
        except NotFound:
            pass
        except DockerException as e:
            logger.warning(f"Error removing sandbox container {container.short_id}: {e}")
