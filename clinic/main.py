import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import models so they are registered with SQLAlchemy Base
from . import models  # noqa: F401
from .config import ENVIRONMENT, FRONTEND_URL, RESEND_API_KEY
from .database import Base, SessionLocal, engine
from .domain.appointments.router import router as appointments_router
from .domain.notifications.router import router as notifications_router
from .domain.patients.router import router as patients_router
from .exceptions import ClinicError
from .routes.calendly_webhooks import router as calendly_webhooks_router
from .routes.public import API_VERSION, BOOKING_PATH, BOOKING_REJECTED_MESSAGE
from .routes.public import router as public_router
from .routes.realtime import router as realtime_router
from .security_headers import SecurityHeadersMiddleware
from .services.calendly_service import CalendlyService
from .services.dashboard_broadcaster import DashboardBroadcaster

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        # Another worker may have created them first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    app.state.broadcaster = DashboardBroadcaster()
    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Clinic API", version=API_VERSION, lifespan=lifespan)


def error_response(status_code: int, message: str, errors=None) -> JSONResponse:
    content = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(ClinicError)
async def clinic_exception_handler(request: Request, exc: ClinicError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} - {exc.status_code} {exc.message}")
    return error_response(exc.status_code, exc.message, exc.errors)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Body/query validation failures use the same 400 envelope as service validation"""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    logger.warning(f"Validation error for {request.url.path}: {errors}")
    message = BOOKING_REJECTED_MESSAGE if request.url.path == BOOKING_PATH else "Validation failed"
    return error_response(400, message, errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise
    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.0f}ms)"
    )
    return response


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(
        SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"]
    )
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")


# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:5173,http://localhost:3000"
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(public_router)
app.include_router(calendly_webhooks_router)
app.include_router(appointments_router)
app.include_router(notifications_router)
app.include_router(patients_router)
app.include_router(realtime_router)


@app.get("/")
def root():
    return {"message": "Clinic API is running"}


@app.get("/health")
def health(request: Request):
    """Service status for monitoring"""
    database = "connected"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"❌ Health check database error: {e}")
        database = "disconnected"
    finally:
        db.close()

    broadcaster = getattr(request.app.state, "broadcaster", None)
    return {
        "success": database == "connected",
        "status": "healthy" if database == "connected" else "degraded",
        "environment": ENVIRONMENT,
        "services": {
            "database": database,
            "websocket": {"sessions": broadcaster.session_count if broadcaster else 0},
            "calendly": "configured" if CalendlyService().api_configured else "direct-link",
            "email": "configured" if RESEND_API_KEY else "not-configured",
        },
    }
