"""
Subscription Sync Backend API

Keeps profiles.plan / auto_renew / billing dates in line with Dodo Payments,
from webhook pushes and from client-triggered syncs.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import Settings
from app.core.errors import BillingSyncError

settings = Settings.from_env()

# Configure logging for Render compatibility (Render captures stdout)
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

from app.api.routes import subscriptions, webhooks
from app.db.base import Base
from app.db.session import build_engine, build_session_factory
# Import all models to ensure they're registered with Base
from app.models import User, Profile  # noqa: F401

app = FastAPI(title="Subscription Sync")
app.state.settings = settings
app.state.engine = None
app.state.session_factory = None

if settings.database_url:
    app.state.engine = build_engine(settings)
    app.state.session_factory = build_session_factory(app.state.engine)
else:
    logger.error("DATABASE_URL is not set; every endpoint will answer 500 until it is configured")

if not settings.dodo_configured:
    logger.warning("DODO_PAYMENTS_API_KEY is not set; sync, toggle and cancel will answer 500")

logger.info("Starting with settings %s", settings.describe())


@app.on_event("startup")
async def startup_event():
    """Create users/profiles tables if they are missing."""
    if app.state.engine is None:
        return
    try:
        Base.metadata.create_all(bind=app.state.engine)
        logger.info("Database tables ready")
    except Exception as e:
        logger.exception("Error creating tables: %s", e)
        raise


@app.exception_handler(BillingSyncError)
async def billing_error_handler(request: Request, exc: BillingSyncError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Missing or invalid parameters", "fields": [f for f in fields if f]},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Register routers
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(subscriptions.router, prefix="/api/subscription", tags=["Subscriptions"])


@app.get("/")
def root():
    return {"status": "Subscription sync API running"}
