# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""HTTP surface: ``POST /run`` and ``GET /health``.

Run with ``contract-sandbox-api`` or ``uvicorn --factory contract_sandbox.api:create_app``.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger

from contract_sandbox.config import SandboxConfig
from contract_sandbox.models import ExecutionRequest
from contract_sandbox.runtime import SandboxRuntime
from contract_sandbox.service import ContractRunService
from contract_sandbox.utils.logger import setup_logger

router = APIRouter()


@router.post("/run", response_class=PlainTextResponse)
async def run(payload: ExecutionRequest, request: Request) -> PlainTextResponse:
    """Stage the submitted contract and tests, run them in the sandbox and return the output."""
    service: ContractRunService = request.app.state.service
    response = await service.handle(payload)
    return PlainTextResponse(response.body, status_code=response.status_code)


@router.get("/health")
async def health(request: Request) -> dict[str, str]:
    service: ContractRunService = request.app.state.service
    return service.health_check()


async def invalid_body(request: Request, exc: Exception) -> PlainTextResponse:
    detail = "; ".join(str(error.get("msg", "")) for error in getattr(exc, "errors", list)())
    return PlainTextResponse(f"Invalid request body: {detail or 'unreadable payload'}", status_code=400)


def create_app(config: SandboxConfig | None = None, runtime: SandboxRuntime | None = None) -> FastAPI:
    """Create a configured FastAPI app.

    Args:
        config: Service configuration; read from the environment when omitted.
        runtime: Optional sandbox runtime override.
    """
    config = config or SandboxConfig()
    service = ContractRunService(config, runtime=runtime)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with service:
            logger.info(f"Contract sandbox ready (runtime={config.runtime}, temp_root={config.temp_root})")
            yield
        logger.info("Contract sandbox stopped")

    app = FastAPI(title="Contract Sandbox", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, invalid_body)
    app.include_router(router)
    return app


def main() -> None:
    """Entry point for the HTTP server."""
    import uvicorn

    config = SandboxConfig()
    setup_logger(config.app_log_dir, config.log_level)
    logger.info(f"Backend server running on http://{config.api_host}:{config.api_port}")
    uvicorn.run(create_app(config), host=config.api_host, port=config.api_port)


if __name__ == "__main__":  # pragma: no cover
    main()
