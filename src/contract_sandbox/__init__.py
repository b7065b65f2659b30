# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
contract-sandbox
"""

__version__ = "0.1.0"

from .config import SandboxConfig
from .errors import (
    CleanupError,
    ContractSandboxError,
    LoggingError,
    SandboxOperationalError,
    SandboxTimeoutError,
    StagingError,
    ValidationError,
)
from .execution_log import ExecutionLogger
from .factory import SandboxFactory
from .invoker import SandboxInvoker
from .models import ExecutionRequest, ExecutionResult, LogRecord, RunResponse, SandboxInvocation, Workspace
from .runtime import SandboxRuntime
from .runtimes.cli import CliRuntime
from .runtimes.docker import DockerRuntime
from .sandbox import ContractSandbox
from .service import ContractRunService
from .workspace import WorkspaceManager

__all__ = [
    "CleanupError",
    "CliRuntime",
    "ContractRunService",
    "ContractSandbox",
    "ContractSandboxError",
    "DockerRuntime",
    "ExecutionLogger",
    "ExecutionRequest",
    "ExecutionResult",
    "LogRecord",
    "LoggingError",
    "RunResponse",
    "SandboxConfig",
    "SandboxFactory",
    "SandboxInvocation",
    "SandboxInvoker",
    "SandboxOperationalError",
    "SandboxRuntime",
    "SandboxTimeoutError",
    "StagingError",
    "ValidationError",
    "Workspace",
    "WorkspaceManager",
]
