"""Vendor Event Tracker API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vendor_tracker.core.config import settings
from vendor_tracker.core.database import create_db_and_tables
from vendor_tracker.integrations.image_store import CloudinaryImageStore
from vendor_tracker.integrations.notifier import NotifierError, build_notifier
from vendor_tracker.lifecycle.engine import utc_now
from vendor_tracker.lifecycle.errors import ErrorKind, InternalFailure, LifecycleError
from vendor_tracker.routes import events

VERSION = "1.0.0"

# Configure logging
settings.log_dir.mkdir(parents=True, exist_ok=True)
log_file = settings.log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info(f"Starting {settings.app_name} ({settings.environment})")
    create_db_and_tables()
    app.state.image_store = CloudinaryImageStore.from_settings(settings)
    app.state.notifier = build_notifier(settings)
    app.state.clock = utc_now
    try:
        app.state.notifier.open()
    except NotifierError as e:
        # OTP issuance reports the failure to callers until the settings are fixed
        logger.error(f"Notifier unavailable at startup: {e.message}")
    yield
    # Shutdown
    app.state.notifier.close()
    logger.info(f"{settings.app_name} shut down")


app = FastAPI(
    title=settings.app_name,
    description="Tracks vendor-serviced events from check-in to customer-verified close",
    version=VERSION,
    lifespan=lifespan,
)

# Configure CORS for the web client
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_body(kind: ErrorKind, message: str, hint: str | None = None) -> dict:
    return {"success": False, "kind": kind.value, "message": message, "hint": hint}


def error_response(exc: LifecycleError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.kind, exc.message, exc.hint),
    )


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    body = error_body(ErrorKind.VALIDATION_FAILURE, message)
    body["errors"] = [
        {"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in errors
    ]
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(InternalFailure("Internal server error"))


# Include routers
app.include_router(events.router)


@app.get("/api/health")
async def health():
    """Health check endpoint."""
    return {
        "success": True,
        "status": "healthy",
        "app": settings.app_name,
        "version": VERSION,
    }
