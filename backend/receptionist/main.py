"""AI Receptionist FastAPI application: turns inbound calls into CRM jobs."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from receptionist.config import Settings, get_settings
from receptionist.errors import ReceptionistError
from receptionist.logging_utils import setup_logging
from receptionist.pipeline.processor import InboundCallProcessor, build_processor
from receptionist.webhooks import router as webhooks_router

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
    setup_logging()
    # Missing provider keys are a deployment bug; refuse to start
    app.state.settings.ensure_complete()
    logger.info("AI Receptionist backend starting up")
    yield
    logger.info("AI Receptionist backend shutting down")


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


async def receptionist_error_handler(request: Request, exc: ReceptionistError) -> JSONResponse:
    logger.info(
        "Webhook rejected: %s %s", exc.status_code, exc.error_code,
        extra={"call_sid": exc.call_sid, "detail": str(exc)},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


# ---------------------------------------------------------------------------
# App creation
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    processor: InboundCallProcessor | None = None,
) -> FastAPI:
    """Build the app around an explicit settings object and processor."""
    settings = settings or get_settings()

    app = FastAPI(
        title="AI Receptionist",
        description="Inbound call processing for contractor receptionist numbers",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.processor = processor or build_processor(settings)

    if settings.allow_all_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(ReceptionistError, receptionist_error_handler)
    app.include_router(webhooks_router)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    return app


app = create_app()
