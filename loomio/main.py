from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from loomio.core.database import session_manager, aget_db
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.api.v1.endpoints.auth import router as auth_router
from loomio.api.v1.endpoints.communities import router as communities_router
from loomio.api.v1.endpoints.tasks import router as tasks_router
from loomio.api.v1.endpoints.notifications import router as notifications_router
from loomio.api.v1.endpoints.leaderboard import router as leaderboard_router
from loomio.api.v1.endpoints.events import router as events_router
from loomio.api.v1.endpoints.subtasks import router as subtasks_router
from loomio.api.v1.endpoints.tags import router as tags_router
from loomio.api.v1.endpoints.users import router as users_router
from loomio.api.v1.endpoints.statistics import router as statistics_router

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
import logging
from contextlib import asynccontextmanager
from loomio.core.config import settings
from loomio.core.exceptions import LoomioError
from loomio.core.rate_limit import limiter

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async context manager for app lifespan events"""

    try:
        logger.info("Starting Loomio application...")
        logger.info("Initializing database and creating tables...")
        await session_manager.init()
        logger.info("Database ready")
    except Exception as e:
        logger.critical(f"Application startup failed: {str(e)}")
        raise

    try:
        yield
    finally:
        logger.info("Closing database connections...")
        await session_manager.close()
        logger.info("Application shutdown complete")


app = FastAPI(
    title="Loomio API",
    description="API for Loomio - community task management",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Request: {request.method} {request.url}")
    response = await call_next(request)
    logger.info(f"Response status: {response.status_code}")
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LoomioError)
async def loomio_exception_handler(request: Request, exc: LoomioError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "error": type(exc).__name__},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation Error: {exc.errors()}")
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={"message": message, "detail": jsonable_errors(errors)},
    )


def jsonable_errors(errors):
    """Pydantic error dicts may carry exception objects under `ctx`."""
    cleaned = []
    for error in errors:
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        error.pop("input", None)
        cleaned.append(error)
    return cleaned


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@app.get("/", tags=["Health Check"])
async def health_check(db: AsyncSession = Depends(aget_db)):
    try:
        await db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "service": "Loomio API",
            "database": "connected",
        }
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return {
            "status": "unhealthy",
            "service": "Loomio API",
            "database": "disconnected",
            "error": str(e)
        }


app.include_router(auth_router, prefix=settings.API_PREFIX, tags=["Authentication"])
app.include_router(communities_router, prefix=settings.API_PREFIX, tags=["Communities"])
app.include_router(tasks_router, prefix=settings.API_PREFIX, tags=["Tasks"])
app.include_router(notifications_router, prefix=settings.API_PREFIX, tags=["Notifications"])
app.include_router(leaderboard_router, prefix=settings.API_PREFIX, tags=["Leaderboard"])
app.include_router(events_router, prefix=settings.API_PREFIX, tags=["Events"])
app.include_router(subtasks_router, prefix=settings.API_PREFIX, tags=["Subtasks"])
app.include_router(tags_router, prefix=settings.API_PREFIX, tags=["Tags"])
app.include_router(users_router, prefix=settings.API_PREFIX, tags=["Users"])
app.include_router(statistics_router, prefix=settings.API_PREFIX, tags=["Statistics"])

logger.info(f"Loaded {len(app.routes)} routes")
