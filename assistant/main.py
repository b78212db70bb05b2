"""Main FastAPI application."""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from assistant import __version__
from assistant.api.endpoints import router
from assistant.config import Settings, get_settings
from assistant.errors import AssistantError
from assistant.services.container import AppServices, build_services
from assistant.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, services: AppServices | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Runtime settings, defaults to the environment
        services: Prebuilt service container, defaults to in-memory services

    Returns:
        Configured application
    """
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(LogConfig(level=settings.log_level))
        sweeper = asyncio.create_task(
            services.approval_store.sweep_forever(settings.approval_sweep_interval_ms / 1000)
        )
        logger.info(f"Assistant service {__version__} started")
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            logger.info("Assistant service stopped")

    app = FastAPI(
        title="Calendar Assistant",
        description=(
            "A conversational AI assistant that manages calendar events over a streaming "
            "thread protocol, with user approval for destructive actions."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Turns",
                "description": "Send a user message and receive the assistant's reply as server-sent events.",
            },
            {
                "name": "Approvals",
                "description": "Approve or reject tool calls that need the user's consent.",
            },
            {
                "name": "Threads",
                "description": "Read and delete stored conversations.",
            },
            {
                "name": "Health",
                "description": "Service health monitoring and status checks.",
            },
        ],
    )
    app.state.services = services

    @app.exception_handler(AssistantError)
    async def handle_assistant_error(request: Request, exc: AssistantError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path} failed with {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.as_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [{"loc": list(error["loc"]), "msg": error["msg"]} for error in exc.errors()]
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": errors})

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("assistant.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
