# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import shlex
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionRequest(BaseModel):
    """A single inbound request to run a contract against its tests.

    Fields are optional on the model so that missing values can be reported
    by name; the orchestrator rejects the request before anything is staged.

    Attributes:
        contract_code: Source text of the contract artifact.
        test_code: Source text of the test artifact.
        entry_name: Name of the contract entry, used for the contract filename.
    """

    model_config = ConfigDict(populate_by_name=True)

    contract_code: str | None = Field(default=None, alias="contractCode")
    test_code: str | None = Field(default=None, alias="testCode")
    entry_name: str | None = Field(default=None, alias="entryName")


class Workspace(BaseModel):
    """A per-request directory holding the staged artifacts.

    Attributes:
        root_path: Unique directory under the configured temp root.
        contract_file_path: Where the contract artifact is written.
        test_file_path: Where the test artifact is written.
        created_at: When the directory was allocated.
    """

    root_path: Path
    contract_file_path: Path | None = None
    test_file_path: Path | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Mount(BaseModel):
    """A host path mapped into the sandbox."""

    model_config = ConfigDict(frozen=True)

    host_path: Path
    container_path: str
    read_only: bool = True

    def to_volume_spec(self) -> str:
        mode = "ro" if self.read_only else "rw"
        return f"{self.host_path}:{self.container_path}:{mode}"


class SandboxInvocation(BaseModel):
    """Everything needed to run one disposable sandbox container.

    Attributes:
        name: Container name, unique per workspace.
        image: Sandbox image reference.
        command: Argument vector run inside the container.
        working_directory: Working directory inside the container.
        mounts: Ordered host to container mappings.
        network_disabled: Run without any network.
        mem_limit: Container memory limit (docker syntax).
        cpu_limit: Number of CPUs available to the container.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    image: str
    command: list[str]
    working_directory: str
    mounts: list[Mount]
    network_disabled: bool = True
    mem_limit: str | None = None
    cpu_limit: float | None = None

    def to_cli_args(self, cli: str = "docker") -> list[str]:
        """Render the equivalent ``run --rm`` argument list for a container CLI."""
        args = [cli, "run", "--rm", f"--name={self.name}"]
        if self.network_disabled:
            args.append("--network=none")
        if self.mem_limit:
            args.append(f"--memory={self.mem_limit}")
        if self.cpu_limit:
            args.append(f"--cpus={self.cpu_limit}")
        for mount in self.mounts:
            args.append(f"--volume={mount.to_volume_spec()}")
        args.append(f"--workdir={self.working_directory}")
        args.append(self.image)
        args.extend(self.command)
        return args

    def display(self, cli: str = "docker") -> str:
        return shlex.join(self.to_cli_args(cli))


class ExecutionResult(BaseModel):
    """Outcome of one sandbox invocation.

    ``failed`` is only set when the sandbox could not be run (runtime
    unavailable, crash, timeout). A test suite that fails inside the sandbox
    still yields ``failed=False``; its verdict lives in the captured text.

    Attributes:
        stdout: Standard output captured from the sandbox.
        stderr: Standard error captured from the sandbox.
        failed: Whether the invocation itself failed.
        failure_reason: Description of the operational failure, if any.
        exit_code: Exit status of the sandboxed process, when known.
        execution_duration: Wall-clock seconds spent in the sandbox.
        command: The constructed command, as a display string.
    """

    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    stderr: str = ""
    failed: bool = False
    failure_reason: str | None = None
    exit_code: int | None = None
    execution_duration: float = 0.0
    command: str = ""

    @property
    def combined_output(self) -> str:
        return self.stdout + self.stderr


class LogRecord(BaseModel):
    """One line of the append-only execution log."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    command: str = ""
    entry_identifier: str
    workspace_path: str | None = None
    stdout: str = ""
    stderr: str = ""
    failure_reason: str | None = None
    exit_code: int | None = None
    execution_duration: float = 0.0


class RunResponse(BaseModel):
    """Text body and HTTP-style status returned for every request."""

    body: str
    status_code: int
