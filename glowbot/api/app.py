"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.requests import Request
from starlette.responses import JSONResponse

from glowbot import __version__
from glowbot.api.routes import router as core_router
from glowbot.core.config.loader import load_config
from glowbot.core.cron.errors import (
    AuthorizationError,
    DuplicateRegistrationError,
    JobNotFoundError,
    JobValidationError,
    PersistenceError,
)
from glowbot.core.logging import setup_logging
from glowbot.core.services import Services, build_services


def attach_services(app: FastAPI, services: Services) -> None:
    """Expose components to request handlers through app.state."""
    app.state.config = services.config
    app.state.store = services.store
    app.state.gate = services.gate
    app.state.registry = services.registry
    app.state.runner = services.runner
    app.state.scheduler = services.scheduler
    app.state.emergency = services.emergency


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: Config → JobStore → components → arm active jobs. Shutdown: stop timers."""
    config = load_config()
    setup_logging(config.logging.level)
    services = build_services(config)
    attach_services(app, services)

    await services.scheduler.start()
    logger.info(f"GlowBot scheduler API started (v{__version__})")
    yield

    await services.scheduler.shutdown()
    logger.info("GlowBot scheduler API shutting down")


# ── Error mapping ────────────────────────────────────────────


async def _validation_error(request: Request, exc: JobValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _not_found(request: Request, exc: JobNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _forbidden(request: Request, exc: AuthorizationError):
    return JSONResponse(
        status_code=403,
        content={
            "detail": "Content generation blocked by trigger gate",
            "reason": exc.reason,
            "source": exc.source,
        },
    )


async def _persistence_error(request: Request, exc: PersistenceError):
    logger.error(f"Persistence error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Job store unavailable"})


async def _duplicate(request: Request, exc: DuplicateRegistrationError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="GlowBot Scheduler API",
        description="Recurring content-generation jobs",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(JobValidationError, _validation_error)
    app.add_exception_handler(JobNotFoundError, _not_found)
    app.add_exception_handler(AuthorizationError, _forbidden)
    app.add_exception_handler(PersistenceError, _persistence_error)
    app.add_exception_handler(DuplicateRegistrationError, _duplicate)

    app.include_router(core_router)
    return app


app = create_app()
