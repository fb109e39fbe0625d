"""Main FastAPI application."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api import health
from app.api.webhooks import voice
from app.core.dependencies import shutdown_services
from app.core.logging import setup_logging
from app.db.database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    yield
    # Shutdown
    await shutdown_services()


app = FastAPI(
    title="Restaurant Voice Agent",
    description="Phone voice agent for restaurant table reservations",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])


@app.get("/")
async def root():
    return {"message": "Restaurant Voice Agent API", "version": "0.1.0"}
