"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autotrader.config import settings
from autotrader.database import create_db_and_tables
from autotrader.engine.errors import (
    AutotraderError,
    ConfigurationError,
    ExchangeError,
    InvalidStateError,
    NotFoundError,
    SignalGenerationError,
)
from autotrader.utils.logging import setup_logging
from autotrader.api import dashboard, orders, positions, settings as settings_api, signals, system

_STATUS_CODES = {
    NotFoundError: 404,
    InvalidStateError: 400,
    ConfigurationError: 400,
    ExchangeError: 502,
    SignalGenerationError: 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from autotrader.engine.scheduler import get_orchestrator
    orchestrator = get_orchestrator()
    if settings.scheduler_autostart:
        orchestrator.start()

    # Start Telegram bot if configured
    telegram_bot = None
    if settings.telegram_bot_token:
        from autotrader.services.telegram_bot import init_bot
        telegram_bot = init_bot()
        telegram_bot.start()

    yield

    if telegram_bot:
        telegram_bot.stop()
    await orchestrator.stop()

    from autotrader.engine.components import get_components
    await get_components().market.close()


app = FastAPI(
    title="Autotrader",
    description="Indodax position management with AI trade signals",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AutotraderError)
async def autotrader_error_handler(request: Request, exc: AutotraderError):
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/health")
def health_check():
    return {"status": "ok"}


# Mount routers
app.include_router(system.router)
app.include_router(dashboard.router)
app.include_router(signals.router)
app.include_router(orders.router)
app.include_router(positions.router)
app.include_router(settings_api.router)
