"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wingscan.api.routes import router
from wingscan.config import Settings, get_settings
from wingscan.history import HistoryLedger, SessionState
from wingscan.ml.classifier import ClassifierConfig
from wingscan.ml.inference import InferencePool
from wingscan.ml.model_manager import OnnxClassifierLoader
from wingscan.ml.model_session import ModelSession
from wingscan.orchestrator import ClassificationOrchestrator

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, pool: InferencePool) -> ClassificationOrchestrator:
    """Wire the model session, session state and orchestrator from settings."""
    session = ModelSession(
        OnnxClassifierLoader(settings, pool),
        ClassifierConfig(version=settings.model_version, alpha=settings.model_alpha, top_k=settings.top_k),
    )
    state = SessionState(
        history=HistoryLedger(capacity=settings.history_capacity, time_format=settings.history_time_format),
    )
    return ClassificationOrchestrator(
        session,
        state,
        max_file_size=settings.max_file_size,
        frame_size=(settings.camera_width, settings.camera_height),
        jpeg_quality=settings.jpeg_quality,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting WingScan (device=%s, model=v%s alpha=%s, timeout=%ss)",
        settings.device,
        settings.model_version,
        settings.model_alpha,
        settings.inference_timeout,
    )
    if not settings.inference_timeout:
        logger.warning("Inference timeout disabled; a hung classifier call keeps the service busy")

    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool
    app.state.orchestrator = build_orchestrator(settings, inference_pool)

    logger.info("WingScan ready")
    yield

    logger.info("Shutting down WingScan")
    inference_pool.shutdown()
    logger.info("WingScan shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="WingScan",
        description="Butterfly photo identification with an on-device image classifier",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
