from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
import os
import logging

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Load environment variables from .env file FIRST
load_dotenv()

from database import create_db_engine, create_db_and_tables
import models  # Import models to register them with SQLModel
from routers import auth, opd, bookings, doctors, meetings, hospitals, users
from middleware.request_logger import RequestLoggingMiddleware
from services.booking_reference import BookingReferenceGenerator
from services.token_cleanup import TokenCleanupScheduler, CLEANUP_INTERVAL_SECONDS
from dependencies import limiter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

TOKEN_CLEANUP_ENABLED = os.getenv("TOKEN_CLEANUP_ENABLED", "true").lower() == "true"


def create_app(engine: Optional[Engine] = None, cleanup_enabled: Optional[bool] = None) -> FastAPI:
    """
    Build the API.

    The engine (connection pool), the booking reference generator and the
    token cleanup scheduler live on app.state and are started and disposed by
    the lifespan below.
    """
    if cleanup_enabled is None:
        cleanup_enabled = TOKEN_CLEANUP_ENABLED
    owns_engine = engine is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        create_db_and_tables(app.state.engine)
        scheduler = None
        if cleanup_enabled:
            scheduler = TokenCleanupScheduler(app.state.engine, CLEANUP_INTERVAL_SECONDS)
            scheduler.start()
        app.state.token_cleanup = scheduler
        yield
        if scheduler is not None:
            await scheduler.stop()
        if owns_engine:
            app.state.engine.dispose()

    app = FastAPI(
        title="OPD CRM API",
        description="Doctor meetings, OPD bookings and agent dashboards",
        version="0.1.0",
        lifespan=lifespan
    )

    app.state.engine = engine if engine is not None else create_db_engine()
    app.state.reference_generator = BookingReferenceGenerator()

    # Set up rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    origins = [
        "http://localhost:5173",  # Development frontend
        os.getenv("FRONTEND_URL", "http://localhost:5173"),
    ]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept", "Origin"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(auth.router)
    app.include_router(opd.router)
    app.include_router(bookings.router)
    app.include_router(doctors.router)
    app.include_router(meetings.router)
    app.include_router(hospitals.router)
    app.include_router(users.router)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        # A failed query is an error, never an empty result set
        logger.exception(f"Database error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Database error"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/")
    def read_root():
        return {"message": "Welcome to OPD CRM API"}

    @app.get("/health")
    def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
