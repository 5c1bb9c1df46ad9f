# backend/artistry/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .core.errors import BookingError, ValidationError
from .database import Base, engine
from .models import blocked_date, enquiry, slot  # noqa: F401  (register tables)
from .routers import admin as admin_router
from .routers import booking as booking_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=f"{settings.BUSINESS_NAME} bookings", docs_url=None, redoc_url=None)

# --- API Routers ---
app.include_router(booking_router.router)
app.include_router(admin_router.router)


@app.on_event("startup")
def create_tables():
    Base.metadata.create_all(bind=engine)
    logger.info("Tables ready (%s)", settings.APP_ENV)


# --- Domain errors -> HTTP ---
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s", request.method, request.url.path, exc.message)
    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.fields:
        body["fields"] = exc.fields
    return JSONResponse(status_code=exc.status_code, content=body)


@app.get("/ping")
def ping():
    return {"ok": True}
