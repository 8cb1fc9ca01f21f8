"""
Surf School Newsletter API - Main Application

SECURITY FEATURES:
- Conditional API docs (disabled in production by default)
- Logging without tokens, secrets or the full database URL
- Production-hardened configuration
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.api.router import api_router
from app.api.public.newsletter import pages_router
from app.webhooks.sendgrid import sendgrid_router
from app.config import settings
from app.database import init_db, dispose_db
from app.exceptions import APIException, create_exception_handlers
from app.middleware import CorrelationIdMiddleware, CorrelationLogFilter
from app.tasks.newsletter_scheduler import start_newsletter_scheduler, stop_newsletter_scheduler
# Import all models to register them with SQLAlchemy metadata before init_db()
from app.models import User, NewsletterContact, NewsletterCampaign, NewsletterEvent  # noqa: F401

APP_NAME = "Surf School Newsletter API"
APP_VERSION = "1.0.0"

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting {APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    # SECURITY: Don't log full database URL, just the driver
    if settings.DATABASE_URL:
        logger.info(f"Database driver: {settings.DATABASE_URL.split('://', 1)[0]}")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - some features may not work")

    if settings.NEWSLETTER_SCHEDULER_ENABLED:
        start_newsletter_scheduler()
    else:
        logger.info("Newsletter scheduler disabled")

    yield

    stop_newsletter_scheduler()
    await dispose_db()
    logger.info(f"Shutting down {APP_NAME}...")


# SECURITY: Conditionally enable docs based on settings
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title=APP_NAME,
    description="Newsletter subscriptions, campaigns, scheduled delivery and open tracking for Scuola di Longboard",
    version=APP_VERSION,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
# SECURITY: Restrict origins to known frontend URLs
allowed_origins = [settings.FRONTEND_URL]
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:5000",  # Express dev server serving the SPA
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

# RFC 7807 error responses
handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(APIException, handlers["api"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

# Include routers
app.include_router(api_router, prefix="/api")
app.include_router(sendgrid_router, prefix="/api/webhook/sendgrid", tags=["webhooks"])
app.include_router(pages_router, tags=["newsletter-public"])


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": APP_NAME,
        "version": APP_VERSION,
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
