"""
FastAPI application entry point for the steering relay.

Responsibilities:
- build (or accept) the SteeringService and the Authenticator
- map BusinessError subclasses to {"error": message} JSON responses
- include the relay and session routes
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from steering_core.api import routes
from steering_core.api.service import SteeringService, get_default_service
from steering_core.config.settings import settings
from steering_core.domain.exceptions import BusinessError, PersistenceError
from steering_core.infrastructure.auth import Authenticator, StaticTokenAuthenticator
from steering_core.infrastructure.logging.logger import logger


def create_app(
    service: Optional[SteeringService] = None,
    authenticator: Optional[Authenticator] = None,
) -> FastAPI:
    app = FastAPI(title="Steering Relay")
    app.state.service = service or get_default_service()
    app.state.authenticator = authenticator or StaticTokenAuthenticator(settings.auth_tokens)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
        allow_methods=["*"],
    )

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
        logger.log(
            level,
            "Request failed",
            extra={"extra": {
                "path": request.url.path,
                "code": exc.code,
                "status": exc.http_status,
                "error": exc.message,
            }},
        )
        body = {"error": exc.message, "code": exc.code}
        if isinstance(exc, PersistenceError) and "content" in exc.extra:
            body["content"] = exc.extra["content"]
        return JSONResponse(body, status_code=exc.http_status)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        logger.warning("Invalid request", extra={"extra": {"path": request.url.path, "error": details}})
        return JSONResponse({"error": details or "Invalid request", "code": "INVALID_REQUEST"}, status_code=400)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", extra={"extra": {"path": request.url.path}})
        return JSONResponse({"error": str(exc) or "Internal server error", "code": "INTERNAL_ERROR"}, status_code=500)

    app.include_router(routes.router)
    return app


def main() -> None:
    uvicorn.run(create_app(), host="0.0.0.0", port=3001)


if __name__ == "__main__":
    main()
