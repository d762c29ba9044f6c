"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reservations.config import settings
from reservations.database import Base, engine
from reservations.errors import ReservationError

# Import routers
from reservations.routers import admin_events, reservations, users

# Import all models so Base.metadata knows about them
from reservations.models.user import User                # noqa: F401
from reservations.models.reservation import Reservation  # noqa: F401
from reservations.models.audit_entry import AuditEntry   # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Room Reservations",
    description="Room-reservation lifecycle service: submission, review and publication",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(reservations.router, prefix="/api", tags=["Reservations"])
app.include_router(admin_events.router, prefix="/api/admin/events", tags=["Admin"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
