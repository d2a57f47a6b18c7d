from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings, setup_logging
from app.dependencies import get_app_state
from app.services.scheduler_service import staleness_scheduler

from app.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting Sparrow TV...")

    try:
        state = get_app_state()

        # Both sources must load once before serving
        logger.info("Fetching playlist and guide...")
        await state.prime()
        logger.info("Initial fetch completed successfully")

        staleness_scheduler.start(
            [state.playlist_cache, state.schedule_cache],
            interval_seconds=settings.stale_poll_interval_sec,
        )

        logger.info("Sparrow TV started successfully")
    except Exception as e:
        logger.error(f"Failed to start Sparrow TV: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down Sparrow TV...")

    try:
        staleness_scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    logger.info("Sparrow TV stopped")


app = FastAPI(
    title="Sparrow TV",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )


def run() -> None:
    """Console entry point"""
    logger.info("listening on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
