"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api import sync, webhook
from app.config import settings
from app.models.base import init_db
from app.scheduler import scheduler
from app.security import BasicAuthMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting Linear Mirror Service")
    if not settings.linear_api_key:
        logger.warning("LINEAR_API_KEY is not set; full synchronization will fail until it is")
    init_db()
    scheduler.start()
    yield
    # Shutdown
    logger.info("Stopping Linear Mirror Service")
    scheduler.stop()


app = FastAPI(
    title="Linear Mirror Service",
    description="Keep a local relational mirror of Linear teams, projects and issues",
    version="1.0.0",
    lifespan=lifespan,
)

# Optional built-in auth (recommended if exposed beyond localhost/private networks)
if settings.auth_enabled:
    if not settings.auth_username or not settings.auth_password:
        raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        allow_paths={"/health", "/webhook"},
    )

# Include API routers
app.include_router(sync.router)
app.include_router(webhook.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Linear Mirror"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
