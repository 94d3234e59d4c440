"""
Spoqen dashboard API application.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from spoqen.config import settings
from spoqen.infrastructure.observability.logging import get_logger, log_request, setup_logging
from spoqen.jobs.rate_limit_sweeper import RateLimitSweeper
from spoqen.middleware import RateLimitHeadersMiddleware, RequestContextMiddleware
from spoqen.middleware.rate_limiter import build_rate_limiters
from spoqen.routes import dashboard_metrics, health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start and stop background resources."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    sweeper = None
    if settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = RateLimitSweeper(
            app.state.rate_limiters.all(),
            interval_seconds=settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
        )
        sweeper.start()
    app.state.rate_limit_sweeper = sweeper

    yield

    logger.info("Application shutting down")
    if sweeper is not None:
        await sweeper.stop()


def create_app() -> FastAPI:
    """Build the application with its own rate limiter tables."""
    app = FastAPI(
        title="Spoqen Dashboard API",
        description="Call metrics and abuse protection for the Spoqen AI receptionist dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.rate_limiters = build_rate_limiters(settings)

    # Last added runs first: request context must be set before headers are read
    app.add_middleware(RateLimitHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(health.router)
    app.include_router(dashboard_metrics.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
            request_id=getattr(request.state, "request_id", None),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
