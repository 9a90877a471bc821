import logging
from contextlib import asynccontextmanager

from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI, Request
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from progress_service.api.middleware import request_context_middleware
from progress_service.api.routes import router as api_router
from progress_service.core import exceptions
from progress_service.core.config import settings
from progress_service.core.database import get_db_engine, get_session_factory
from progress_service.core.logging import setup_logging

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application resources."""
    setup_logging()
    logger.info("Application startup initiated")

    engine = None
    arq_pool = None

    try:
        try:
            engine = get_db_engine()
            app.state.engine = engine
            app.state.db_session_maker = get_session_factory(engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

        try:
            arq_pool = await create_pool(
                RedisSettings.from_dsn(settings.ARQ.REDIS_URL),
                default_queue_name=settings.ARQ.ARQ_QUEUE_NAME,
            )
            app.state.arq_pool = arq_pool
            logger.info("ARQ Redis pool initialized successfully")
        except Exception as e:
            logger.warning(f"ARQ Pool init failed (is Redis ready?): {e}")

        logger.info("Application startup complete")
        yield

    finally:
        logger.info("Application shutdown initiated")

        if arq_pool:
            try:
                await arq_pool.close()
                logger.info("ARQ pool closed")
            except Exception as e:
                logger.error(f"Error closing ARQ pool: {e}")

        if engine:
            try:
                await engine.dispose()
                logger.info("Database disposed")
            except Exception as e:
                logger.error(f"Error disposing database: {e}")

        logger.info("Application shutdown complete")


app = FastAPI(
    title="Progress Service",
    version="1.0",
    lifespan=lifespan,
    docs_url="/api/v1/docs",
    openapi_url="/api/v1/openapi.json",
)

app.middleware("http")(request_context_middleware)

@app.exception_handler(exceptions.ProgressServiceError)
async def progress_service_exception_handler(
    request: Request,
    exc: exceptions.ProgressServiceError,
):
    """Maps service errors onto HTTP statuses."""
    status_code = 400
    if isinstance(exc, exceptions.NotFoundError):
        status_code = 404
    elif isinstance(exc, exceptions.PreconditionFailedError):
        status_code = 412

    logger.warning(f"Service error: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc)},
    )

@app.exception_handler(SQLAlchemyError)
async def db_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

Instrumentator().instrument(app).expose(app)
app.include_router(api_router, prefix="/api/v1")
