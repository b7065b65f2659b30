import asyncio
import os
import signal
import time

from loguru import logger

from contract_sandbox.errors import SandboxOperationalError, SandboxTimeoutError
from contract_sandbox.models import ExecutionResult, SandboxInvocation
from contract_sandbox.runtime import SandboxRuntime

# `docker run` exits with 125 when the daemon could not create or start the container.
RUNTIME_ERROR_EXIT_CODE = 125


class CliRuntime(SandboxRuntime):
    """
    Container CLI implementation of the SandboxRuntime.

    Runs ``<cli> run --rm ...`` as a child process in its own session. On
    timeout the whole process group is killed and the container is killed by
    name, since killing the CLI client alone leaves the container running.
    """

    def __init__(self, cli: str = "docker", kill_timeout: float = 10.0):
        self.cli = cli
        self.kill_timeout = kill_timeout

    async def run(self, invocation: SandboxInvocation, timeout: float) -> ExecutionResult:
        """
        Run the container through the CLI and collect both output streams.
        """
        args = invocation.to_cli_args(self.cli)
        logger.info(f"Starting sandbox container {invocation.name} via {self.cli}")

        start_time = time.time()
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Container CLI {self.cli} unavailable: {e}")
            raise SandboxOperationalError(f"container runtime unavailable: {e}") from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Execution timed out ({timeout}s). Killing sandbox {invocation.name}.")
            await self._terminate(proc, invocation.name)
            raise SandboxTimeoutError() from e
        except asyncio.CancelledError:
            await self._terminate(proc, invocation.name)
            raise

        duration = time.time() - start_time
        stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

        if proc.returncode is not None and proc.returncode < 0:
            raise SandboxOperationalError(f"sandbox process terminated by signal {-proc.returncode}")
        if proc.returncode == RUNTIME_ERROR_EXIT_CODE:
            logger.error(f"Container runtime failed to run {invocation.name}: {stderr.strip()}")
            raise SandboxOperationalError(f"container runtime error: {stderr.strip() or 'exit status 125'}")

        return ExecutionResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=proc.returncode,
            execution_duration=duration,
            command=invocation.display(self.cli),
        )

    async def _terminate(self, proc: asyncio.subprocess.Process, name: str) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await proc.wait()
        await self._kill_container(name)

    async def _kill_container(self, name: str) -> None:
        try:
            killer = await asyncio.create_subprocess_exec(
                self.cli,
                "kill",
                name,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.warning(f"Could not kill sandbox container {name}: {e}")
            return

        try:
            await asyncio.wait_for(killer.wait(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            killer.kill()
            await killer.wait()
            logger.warning(f"Timed out killing sandbox container {name}")
