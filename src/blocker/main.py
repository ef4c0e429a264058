"""Blocker Docker volume plugin application."""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Callable

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from blocker import __version__
from blocker.api import plugin_router
from blocker.api.dependencies import close_runtime, init_runtime
from blocker.config import get_config
from blocker.errors import BlockerError, InvalidRequestError
from blocker.logging import setup_logging
from blocker.logging_schema import LogEvent

# Import metrics to ensure they are registered
import blocker.metrics  # noqa: F401

# Configure logging using config
_config = get_config()
setup_logging(_config.logging)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "Starting Blocker",
        extra={"event": LogEvent.APP_STARTED, "version": __version__},
    )

    # Fails startup when the host is not an EC2 instance
    await init_runtime()

    yield
    # Outstanding mounts are left in place
    logger.info("Shutting down Blocker", extra={"event": LogEvent.APP_STOPPED})
    await close_runtime()


app = FastAPI(
    title="Blocker",
    description="Docker volume plugin backed by EBS",
    version=__version__,
    lifespan=lifespan,
)


# The plugin protocol reports failures in the Err field of a 200 response
@app.exception_handler(BlockerError)
async def blocker_error_handler(request: Request, exc: BlockerError) -> JSONResponse:
    """Flatten driver errors into the Err field."""
    logger.warning(
        "Plugin request failed",
        extra={
            "event": LogEvent.PLUGIN_ERROR,
            "error_code": exc.code.value,
            "error_message": exc.message,
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=200, content={"Err": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report a malformed request body as an InvalidRequestError."""
    error = InvalidRequestError(f"Invalid plugin request: {exc.errors()}")
    return await blocker_error_handler(request, error)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with logging."""
    logger.exception(
        "Unhandled exception",
        extra={"event": LogEvent.UNHANDLED_EXCEPTION, "path": request.url.path},
    )
    return JSONResponse(status_code=200, content={"Err": str(exc) or type(exc).__name__})


@app.middleware("http")
async def request_log_middleware(
    request: Request, call_next: Callable[[Request], Response]
) -> Response:
    """Log every plugin call on entry and completion."""
    start = time.monotonic()
    logger.info(
        "Request %s",
        request.url.path,
        extra={"event": LogEvent.REQUEST_RECEIVED, "path": request.url.path},
    )
    response = await call_next(request)
    logger.debug(
        "Request %s finished",
        request.url.path,
        extra={
            "path": request.url.path,
            "duration_ms": round((time.monotonic() - start) * 1000, 1),
        },
    )
    return response


app.include_router(plugin_router)


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def main() -> None:
    """Run the plugin on its Unix socket."""
    config = get_config()
    socket_path = config.server.socket_path

    # A socket left by a previous run blocks bind()
    if os.path.exists(socket_path):
        os.remove(socket_path)

    uvicorn.run(
        "blocker.main:app",
        uds=socket_path,
        reload=False,
    )


if __name__ == "__main__":
    main()
