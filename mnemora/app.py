"""FastAPI application factory, CORS, and error rendering."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mnemora.config import get_settings
from mnemora.errors import MnemoraError
from mnemora.routers import continuities, drifts, entities, session_runs
from mnemora.services.event_bus import event_bus, log_domain_event
from mnemora.utils.logging_config import get_logger

logger = get_logger("mnemora.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Ensure tables exist
    from mnemora.database import engine, init_models
    await init_models(engine)
    unsubscribe = event_bus.subscribe_all(log_domain_event)
    yield
    unsubscribe()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version="0.4", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MnemoraError)
    async def mnemora_error_handler(request: Request, exc: MnemoraError):
        if exc.status_code >= 500:
            logger.error(exc.message, exc_info=exc.cause,
                         extra={"action": request.url.path, "metadata": {"code": exc.code}})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    app.include_router(continuities.router)
    app.include_router(entities.router)
    app.include_router(session_runs.router)
    app.include_router(drifts.router)
    return app


app = create_app()
