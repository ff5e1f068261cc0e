"""
Hypatia - Learning Material Ingestion Service
=============================================
Application entry point: builds the FastAPI app and wires services onto
its state.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from hypatia.api.routes import router as api_router
from hypatia.config.settings import get_config
from hypatia.integrations.mongodb_service import MongoDBService
from hypatia.services.material_service import MaterialService
from hypatia.utils.error_handling import (
    AppError, ValidationError, exception_handler_factory, format_exception_response, log_exception,
)
from hypatia.utils.logging_utils import clear_request_id, get_logger, set_request_id

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create services on startup unless they were injected."""
    logger.info("Starting Hypatia material service...")
    if getattr(app.state, "material_service", None) is None:
        config = get_config()
        mongodb = MongoDBService(config=config)
        await mongodb.initialize()
        app.state.material_service = MaterialService(mongodb=mongodb, config=config)
        logger.info("All services initialized successfully")

    yield

    logger.info("Shutting down Hypatia material service...")
    await app.state.material_service.mongodb.close()


def create_app(material_service: Optional[MaterialService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        material_service: Pre-built service, used by tests to inject mock storage
    """
    config = get_config()
    app = FastAPI(
        title="Hypatia",
        description="Learning material ingestion and relationship graph API",
        version=config.version,
        docs_url=config.api.docs_url,
        lifespan=lifespan,
    )
    app.state.material_service = material_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Report request validation errors in the application error format."""
        field_errors = {}
        for error in exc.errors():
            field_name = ".".join(str(part) for part in error["loc"]) if error["loc"] else "unknown"
            field_errors[field_name] = error["msg"]
        app_error = ValidationError(message="Request validation error", field_errors=field_errors)
        log_exception(app_error)
        return format_exception_response(app_error)

    app.add_exception_handler(AppError, exception_handler_factory(AppError))
    app.add_exception_handler(HTTPException, exception_handler_factory(HTTPException))
    app.add_exception_handler(Exception, exception_handler_factory(Exception))

    @app.get("/health", tags=["system"])
    async def health_check():
        service = app.state.material_service
        database = await service.mongodb.check_connection() if service else False
        return {
            "status": "healthy" if database else "degraded",
            "version": config.version,
            "database": "mock" if service and service.mongodb.mock else ("connected" if database else "unavailable"),
        }

    app.include_router(api_router, prefix=config.api.api_prefix)
    return app


app = create_app()
