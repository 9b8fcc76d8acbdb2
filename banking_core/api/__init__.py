"""
Banking Core API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import get_config
from ..errors import (
    AccountNumberExhaustedError, AuthenticationFailure, BankingError, ConflictError,
    InvalidStateError, NotFoundError, UnconfiguredError, ValidationError
)
from ..logging_config import get_logger, setup_logging
from .auth import BankingSystem
from .accounts import router as accounts_router
from .sessions import router as sessions_router

logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 400,
    AuthenticationFailure: 401,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStateError: 400,
    UnconfiguredError: 500,
    AccountNumberExhaustedError: 500,
}


def status_code_for(error: BankingError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 500


async def banking_error_handler(request: Request, exc: BankingError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"Fatal error on {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"kind": ValidationError.kind, "detail": message}
    )


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    When no system is given one is built from the global configuration,
    which raises UnconfiguredError if the encryption key is missing.
    """
    if system is None:
        config = get_config()
        setup_logging(level=config.log_level, fmt=config.log_format, log_file=config.log_file)
        system = BankingSystem(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Close the storage handle on shutdown"""
        yield
        system.close()

    app = FastAPI(
        title="Banking Core API",
        description="Accounts, funding and sessions for the retail banking core",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.banking_system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BankingError, banking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(sessions_router, prefix="/auth", tags=["Auth"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "banking_core_api",
            "version": "1.0.0"
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "banking_core.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level="info"
    )
