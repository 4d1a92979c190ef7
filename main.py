#!/usr/bin/env python3
"""
agentify-compiler: FastAPI service that turns agent configurations into
WASM modules or native plugins, locally or via GitHub Actions.
"""
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agentify import __version__
from agentify.api.compile import router as compile_router
from agentify.api.download import router as download_router
from agentify.api.metrics import router as metrics_router
from agentify.api.stream import router as stream_router
from agentify.api.deps import get_config
from agentify.core.config import CompilerConfig
from agentify.core.errors import CompilationError
from agentify.core.logging import setup_logging
from agentify.core.request_logging import RequestLoggingMiddleware
from agentify.db.database import init_db

# Setup structured JSON logging
setup_logging(os.environ.get("LOG_LEVEL", "INFO"))

# Initialize database on startup
init_db()

logger = logging.getLogger(__name__)


def log_compiler_availability(config: CompilerConfig) -> None:
    """Report missing compilers once, at startup."""
    if not config.remote_enabled:
        logger.warning("github_actions_unavailable reason=missing_token")
    if not config.local_build_enabled:
        logger.info("local_build_disabled")


log_compiler_availability(get_config())

# =============================================================================
# Configuration from environment
# =============================================================================
LISTEN_HOST = os.environ.get("LISTEN_HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))

# Create app
app = FastAPI(
    title="agentify-compiler",
    description="Agent compilation service with GitHub Actions fallback",
    version=__version__,
)


# =============================================================================
# Error handlers
# =============================================================================

@app.exception_handler(CompilationError)
async def compilation_error_handler(request: Request, exc: CompilationError) -> JSONResponse:
    """Render pipeline errors as {success: false, message}."""
    if exc.status_code >= 500:
        logger.error(f"request_failed error_type={type(exc).__name__} status={exc.status_code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are 400s with the first problem as the message."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a 500 with no internal detail in the body."""
    logger.exception(f"request_failed error_type={type(exc).__name__} path={request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
    )


# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Include routes
app.include_router(compile_router)
app.include_router(download_router)
app.include_router(stream_router)
app.include_router(metrics_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    config = get_config()
    return {
        "status": "ok",
        "version": __version__,
        "compilers": {
            "local": config.local_build_enabled,
            "github_actions": config.remote_enabled,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=LISTEN_HOST, port=PORT)
