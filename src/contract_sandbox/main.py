# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from contract_sandbox.config import SandboxConfig
from contract_sandbox.models import ExecutionRequest
from contract_sandbox.service import ContractRunService
from contract_sandbox.utils.logger import setup_logger

# Initialize Sandbox Logic
service = ContractRunService()


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    async with service:
        yield


# Initialize MCP Server
mcp = FastMCP("contract-sandbox", lifespan=lifespan)


@mcp.tool()  # type: ignore[misc]
async def run_contract_tests(contract_code: str, test_code: str, entry_name: str) -> str:
    """
    Run a contract's tests in a disposable sandbox.
    Returns the captured stdout followed by stderr.
    """
    request = ExecutionRequest(contract_code=contract_code, test_code=test_code, entry_name=entry_name)
    try:
        response = await service.handle(request)
    except Exception as e:
        return f"Error running contract tests: {e!s}"

    if response.status_code == 200:
        return response.body
    return f"Error ({response.status_code}): {response.body}"


@mcp.tool()  # type: ignore[misc]
async def health_check() -> dict[str, str]:
    """
    Liveness probe for the sandbox service.
    """
    return service.health_check()


def main() -> None:
    """Entry point for the MCP server."""
    config = SandboxConfig()
    setup_logger(config.app_log_dir, config.log_level)
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
