"""
FastAPI application factory.

Serve with ``uvicorn trinity.api.app:create_app --factory``.
"""

import json

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from trinity import __version__
from trinity.api.routes import router
from trinity.exceptions import PaymentRequiredError, RateLimitedError, TrinityError
from trinity.logging import get_logger
from trinity.payments import REQUIREMENTS_HEADER
from trinity.runtime import Runtime, build_runtime

logger = get_logger("api")


async def trinity_error_handler(request: Request, exc: TrinityError) -> JSONResponse:
    """Render a TrinityError as ``{"error": {"code", "message"}}``."""
    content: dict = {"error": {"code": exc.code, "message": exc.message}}
    headers: dict[str, str] = {}

    if isinstance(exc, PaymentRequiredError):
        requirement = exc.requirement.to_dict()
        content["paymentRequirements"] = requirement
        headers[REQUIREMENTS_HEADER] = json.dumps(requirement, separators=(",", ":"))
    elif isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)

    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body and query validation failures in the same error shape."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid value')}" if location else "Invalid request"
    return JSONResponse(status_code=422, content={"error": {"code": "VALIDATION_ERROR", "message": message}})


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """
    Create the API application.

    Args:
        runtime: Wired components (defaults to ``build_runtime()`` from the
            environment)
    """
    app = FastAPI(title="Trinity Orchestrator", version=__version__)
    app.state.runtime = runtime or build_runtime()
    app.include_router(router, prefix="/api")
    app.add_exception_handler(TrinityError, trinity_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    return app
