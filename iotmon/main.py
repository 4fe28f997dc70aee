"""
IoT Monitor - telemetry dashboard backend
Main FastAPI Application
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import IntegrityError
import logging

from iotmon.core.config import settings
from iotmon.core.errors import AppError
from iotmon.api import api_router
from iotmon.models import init_db
from iotmon.services import request_stats

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def create_default_dev():
    """Create the configured dev account if no dev exists yet"""
    from sqlalchemy import select
    from iotmon.models.database import async_session_maker
    from iotmon.models.user import User, UserRole
    from iotmon.core.security import get_password_hash

    if not settings.FIRST_DEV_EMAIL or not settings.FIRST_DEV_PASSWORD:
        logger.info("No initial dev account configured")
        return

    async with async_session_maker() as session:
        result = await session.execute(
            select(User.id).where((User.role == UserRole.DEV.value) | User.is_dev.is_(True)).limit(1)
        )
        if result.first() is not None:
            logger.info("Dev user already exists")
            return

        dev = User(
            username="dev",
            email=settings.FIRST_DEV_EMAIL,
            password_hash=get_password_hash(settings.FIRST_DEV_PASSWORD),
            must_change_password=True
        )
        dev.set_role(UserRole.DEV)
        session.add(dev)
        await session.commit()
        logger.info(f"Initial dev user created: {settings.FIRST_DEV_EMAIL}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    await init_db()
    logger.info("Database initialized")
    await create_default_dev()
    yield
    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## IoT Monitor

    Backend for the sensor telemetry dashboard and mobile app.

    ### Features
    - Paginated readings with field-prefixed search
    - Device claiming with 5-digit pairing codes
    - Three-tier roles (user, admin, dev)
    - Audit logging of privileged actions
    - System health statistics
    """,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def count_requests(request: Request, call_next):
    """Feed the request counters shown on the health page"""
    response = await call_next(request)
    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path
    request_stats.record(f"{request.method} {path}", response.status_code)
    return response


# Exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Map domain errors to their HTTP status"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Uniqueness violations that escaped the services"""
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Conflict"}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal error occurred"}
    )


# Include API routes
app.include_router(api_router, prefix=settings.API_PREFIX)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Liveness probe"""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "iotmon.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
