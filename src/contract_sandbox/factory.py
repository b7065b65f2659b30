from contract_sandbox.config import SandboxConfig
from contract_sandbox.runtime import SandboxRuntime
from contract_sandbox.runtimes.cli import CliRuntime
from contract_sandbox.runtimes.docker import DockerRuntime


class SandboxFactory:
    """
    Picks the container runtime strategy named by ``SandboxConfig.runtime``.
    """

    @staticmethod
    def get_runtime(config: SandboxConfig) -> SandboxRuntime:
        """
        Build the runtime that will execute contract tests.

        ``docker`` talks to the daemon through the Docker SDK; ``cli`` shells
        out to ``config.container_cli`` (docker, podman or anything that speaks
        the same ``run``/``kill`` interface).
        """
        if config.runtime == "cli":
            return CliRuntime(cli=config.container_cli, kill_timeout=config.kill_timeout)
        if config.runtime == "docker":
            return DockerRuntime()
        raise ValueError(f"Unsupported sandbox runtime: {config.runtime}")  # pragma: no cover
