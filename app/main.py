import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

# Import models so every table is registered with the Base metadata
from . import models  # noqa: F401
from .config import UPLOADS_DIR
from .database import Base, engine
from .domain.bookings import router as bookings_router
from .domain.issues import router as issues_router
from .domain.owners import router as owners_router
from .domain.payouts import router as payouts_router
from .domain.statements import router as statements_router
from .routes.admin import router as admin_router
from .routes.ai import router as ai_router
from .routes.auth import router as auth_router
from .routes.contacts import guest_router as guest_contacts_router
from .routes.contacts import router as contacts_router
from .routes.dashboards import manager_router as manager_dashboard_router
from .routes.dashboards import owner_router as owner_dashboard_router
from .routes.documents import router as documents_router
from .routes.expenses import router as expenses_router
from .routes.inventory import router as inventory_router
from .routes.notifications import router as notifications_router
from .routes.properties import router as properties_router
from .routes.recurring_tasks import router as recurring_tasks_router
from .routes.reminders import router as reminders_router
from .routes.settings import router as settings_router
from .routes.tasks import router as tasks_router
from .routes.templates import email_router as email_templates_router
from .routes.templates import sms_router as sms_templates_router
from .routes.users import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        if get_redis_client() is not None:
            logger.info("Redis connection established")
        else:
            logger.info("REDIS_URL not set - rate limiting and FX cache run in-process")
    except Exception as e:
        logger.warning(f"Redis connection failed - Rate limiting will operate in fail-open mode: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="HostHub API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(f"Authentication failed for {request.url.path}: Missing or invalid Authorization header")
            return JSONResponse(
                status_code=401,
                content={"detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."},
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Routes
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(owners_router)
app.include_router(properties_router)
app.include_router(bookings_router)
app.include_router(expenses_router)
app.include_router(statements_router)
app.include_router(payouts_router)
app.include_router(issues_router)
app.include_router(tasks_router)
app.include_router(recurring_tasks_router)
app.include_router(contacts_router)
app.include_router(guest_contacts_router)
app.include_router(documents_router)
app.include_router(inventory_router)
app.include_router(settings_router)
app.include_router(notifications_router)
app.include_router(email_templates_router)
app.include_router(sms_templates_router)
app.include_router(ai_router)
app.include_router(reminders_router)
app.include_router(admin_router)
app.include_router(owner_dashboard_router)
app.include_router(manager_dashboard_router)

# Uploaded receipts, documents, issue photos and statement PDFs
app.mount(
    "/uploads",
    StaticFiles(directory=os.path.join(UPLOADS_DIR, "uploads"), check_dir=False),
    name="uploads",
)


@app.get("/")
def root():
    return {"message": "HostHub API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        from .rate_limiter import get_redis_client

        redis_client = get_redis_client()
        if redis_client is None:
            return {"status": "disabled", "redis": {"connected": False}}

        start_time = time.time()
        redis_client.ping()
        response_time = (time.time() - start_time) * 1000

        info = redis_client.info()
        return {
            "status": "healthy",
            "redis": {
                "connected": True,
                "response_time_ms": round(response_time, 2),
                "version": info.get("redis_version", "unknown"),
                "used_memory_human": info.get("used_memory_human", "unknown"),
            },
        }
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
