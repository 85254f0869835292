import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from the working directory before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from arvi.core.config import settings, validate_config
from arvi.core.database import create_all_tables, get_database_url, init_engine
from arvi.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_error_handler,
    unhandled_exception_handler,
)
from arvi.core.logging import configure_logging
from arvi.core.middleware.metrics import MetricsMiddleware
from arvi.core.middleware.request_id import RequestIdMiddleware
from arvi.core.middleware.tracing import TracingMiddleware
from arvi.core.tracing import setup_tracing
from arvi.core.validation import validate_env
from arvi.api import energy, habit_series, health, metrics, trial
from arvi.features.ai.gateway import AIGateway
from arvi.features.ai.groq_gateway import GroqGateway
from arvi.features.ai.openai_gateway import OpenAIGateway
from arvi.features.ai.router import AIRouter
from arvi.features.habit_series.service import HabitSeriesService

configure_logging(settings.ENV)
validate_env()
validate_config()
setup_tracing(enabled=settings.OTEL_ENABLED)


def build_gateway(cfg=settings) -> AIGateway:
    """One client per vendor, created once per process."""
    gateways = {}
    if cfg.GROQ_API_KEY:
        gateways["groq"] = GroqGateway(api_key=cfg.GROQ_API_KEY)
    if cfg.OPENAI_API_KEY:
        gateways["openai"] = OpenAIGateway(api_key=cfg.OPENAI_API_KEY)
    return AIRouter(gateways)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("arvi")
    logger.info("Starting Arvi backend...")
    app.state.startup_time = time.time()

    if get_database_url():
        init_engine()
        create_all_tables()

    if getattr(app.state, "habit_series_service", None) is None:
        app.state.habit_series_service = HabitSeriesService(build_gateway())
    try:
        yield
    finally:
        logger.info("Stopping Arvi backend...")


app = FastAPI(title="Arvi - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(TracingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(habit_series.router)
app.include_router(energy.router)
app.include_router(trial.router)
app.include_router(health.router)
app.include_router(metrics.router)
