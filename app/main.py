from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from app.api import cron, health, notifications, telegram
from app.scheduler import start_scheduler, stop_scheduler
from app.container import get_services, shutdown_services
from app.config import get_settings
from app.database import engine, Base, ensure_sqlite_columns
from app.models import User, PriceAlert, PriceHistoryEntry, FlightTrack  # noqa: F401 - register tables

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting AeroWizard")

    if settings.database_url.startswith("sqlite"):
        logger.info("SQLite detected - creating tables if needed")
        Base.metadata.create_all(bind=engine)
        ensure_sqlite_columns()

    try:
        services = get_services()

        if services.provider.is_available():
            healthy = await services.provider.check_health()
            logger.info(f"{'✅' if healthy else '❌'} Amadeus health check")
            services.provider.start_token_refresh()
        else:
            logger.warning("Amadeus credentials not configured - searches will fail")

        if settings.telegram_bot_token and settings.telegram_webhook_url:
            await services.notifier.transport.set_webhook(
                settings.telegram_webhook_url, settings.telegram_webhook_secret or None
            )
            logger.info("✅ Telegram webhook registered")

        if settings.scheduler_enabled:
            start_scheduler()
            logger.info("✅ APScheduler started")

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")

    # Application is running
    yield

    # Shutdown
    logger.info("🛑 Shutting down AeroWizard")

    try:
        stop_scheduler()
        logger.info("✅ APScheduler stopped")

        # Close provider and Telegram HTTP clients
        await shutdown_services()
        logger.info("✅ Services shutdown")

    except Exception as e:
        logger.error(f"❌ Shutdown error: {e}")


app = FastAPI(
    title="AeroWizard",
    description="Telegram flight search bot with price alerts and flight status tracking",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(telegram.router, prefix="/telegram", tags=["telegram"])
app.include_router(cron.router, prefix="/cron", tags=["cron"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])


# Health check for monitoring/Docker
@app.get("/ping")
async def ping():
    """Simple ping endpoint for health checks."""
    return {"status": "ok"}
