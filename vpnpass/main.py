"""
Main FastAPI application for the vpnpass API.
Serves health, credential management, system info, the expiry trigger and metrics.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vpnpass.api.routes import health, system, users
from vpnpass.core.errors import (
    AccessDenied,
    BelowMinimum,
    DuplicateCredential,
    ExternalServiceError,
    NotFound,
    PersistenceError,
    ValidationError,
    VpnPassError,
)
from vpnpass.core.config import settings
from vpnpass.core.logging import configure_logging
from vpnpass.utils.metrics import router as metrics_router

configure_logging()
logger = logging.getLogger("api")

STATUS_BY_ERROR = {
    ValidationError: 400,
    BelowMinimum: 400,
    AccessDenied: 403,
    NotFound: 404,
    DuplicateCredential: 409,
    ExternalServiceError: 502,
    PersistenceError: 500,
}


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, "data": None})


app = FastAPI(
    title="vpnpass API",
    description="Credential provisioning API for the UDP tunnel service",
    version="1.0.0",
)


@app.exception_handler(VpnPassError)
async def vpnpass_error_handler(request: Request, exc: VpnPassError) -> JSONResponse:
    status_code = next((code for cls, code in STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
    log = logger.error if status_code >= 500 else logger.info
    log("api_error", extra={"path": request.url.path, "status_code": status_code, "error": exc.message})
    return _envelope(status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _envelope(400, "Invalid request body")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _envelope(exc.status_code, str(exc.detail))


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(users.router)
app.include_router(system.router)
app.include_router(metrics_router)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
