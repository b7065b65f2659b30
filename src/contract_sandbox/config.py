from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SandboxConfig(BaseSettings):
    """
    Configuration for the contract sandbox service.
    """

    runtime: Literal["docker", "cli"] = "docker"
    docker_image: str = "python:3.12-slim"
    container_cli: str = "docker"

    # Filesystem layout
    temp_root: Path = Path("tmp")
    execution_log_path: Path = Path("logs/executions.jsonl")
    app_log_dir: Path = Path("logs")
    log_level: str = "INFO"

    # Limits
    execution_timeout: float = 60.0
    kill_timeout: float = 10.0
    max_artifact_bytes: int | None = None
    mem_limit: str = "512m"
    cpu_limit: float = 1.0
    network_disabled: bool = True

    # Layout expected by the sandbox image. The contract sits beside the test
    # file, which pytest's default import mode puts on sys.path.
    artifact_extension: str = ".py"
    test_filename: str = "test_contract.py"
    contract_mount_template: str = "/sandbox/tests/{entry}.py"
    test_mount_path: str = "/sandbox/tests/test_contract.py"
    container_workdir: str = "/sandbox"
    test_command: list[str] = ["python", "-m", "pytest", "-q"]

    # HTTP surface
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="CONTRACT_SANDBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("contract_mount_template")
    @classmethod
    def _check_contract_template(cls, value: str) -> str:
        if "{entry}" not in value:
            raise ValueError("contract_mount_template must contain '{entry}'")
        if not value.startswith("/"):
            raise ValueError("contract_mount_template must be an absolute container path")
        return value

    @field_validator("test_mount_path", "container_workdir")
    @classmethod
    def _check_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("container paths must be absolute")
        return value

    @field_validator("test_filename")
    @classmethod
    def _check_test_filename(cls, value: str) -> str:
        if not value or "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError("test_filename must be a plain file name")
        return value

    @field_validator("execution_timeout", "kill_timeout")
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @model_validator(mode="after")
    def _check_contract_beside_test(self) -> "SandboxConfig":
        contract_dir = PurePosixPath(self.contract_mount_template).parent
        test_dir = PurePosixPath(self.test_mount_path).parent
        if contract_dir != test_dir:
            raise ValueError(
                f"contract_mount_template ({contract_dir}) and test_mount_path ({test_dir}) "
                "must share a directory so the test can import the contract"
            )
        return self
