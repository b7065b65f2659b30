import os
import stat
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from loguru import logger

from contract_sandbox.config import SandboxConfig
from contract_sandbox.models import ExecutionResult


@pytest.fixture
def config(tmp_path: Path) -> SandboxConfig:
    return SandboxConfig(
        temp_root=tmp_path / "tmp",
        execution_log_path=tmp_path / "logs" / "executions.jsonl",
        app_log_dir=tmp_path / "logs",
        execution_timeout=5.0,
        kill_timeout=2.0,
    )


@pytest.fixture
def mock_runtime() -> Any:
    runtime = MagicMock()
    runtime.cli = "docker"
    runtime.run = AsyncMock(
        return_value=ExecutionResult(
            stdout="1 passed\n",
            stderr="warning: deprecated\n",
            exit_code=0,
            execution_duration=0.2,
            command="docker run --rm sandbox",
        )
    )
    return runtime


@pytest.fixture
def log_messages() -> Generator[list[str], None, None]:
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def make_cli(tmp_path: Path) -> Any:
    """Write an executable shell script that stands in for the container CLI."""

    def _make(body: str, name: str = "fake-docker") -> Path:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    if os.name != "posix":  # pragma: no cover
        pytest.skip("stub container CLI requires a POSIX shell")
    return _make


@pytest.fixture
def read_log_lines() -> Any:
    def _read(path: Path) -> list[str]:
        if not path.exists():
            return []
        return [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]

    return _read
