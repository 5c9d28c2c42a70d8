import asyncio
import importlib
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError

from seatlock.config import settings
from seatlock.db.session import async_session
from seatlock.deps import build_services
from seatlock.errors import StoreUnavailable
from seatlock.logging_setup import new_trace_id, setup_logging
from seatlock.metrics import update_queue_depth
from seatlock.services.change_feed import build_feed


@asynccontextmanager
async def lifespan(app: FastAPI):
    # services installed before startup are reused
    services = getattr(app.state, "services", None) or build_services(async_session, build_feed(settings))
    app.state.services = services
    stop = asyncio.Event()
    sweeper_task = None
    if settings.SWEEPER_ENABLED:
        sweeper_task = asyncio.create_task(services.sweeper.run_periodic(settings.SWEEP_INTERVAL_SECONDS, stop))
    try:
        yield
    finally:
        stop.set()
        if sweeper_task is not None:
            await sweeper_task
        await services.engine.wait_for_notifications()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# initialize logging and Sentry
setup_logging(settings.LOG_LEVEL, settings.APP_NAME)
if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN)


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = new_trace_id(request.headers.get("x-trace-id"))
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    return JSONResponse(status_code=503, content={"detail": "Please try again", "retryable": exc.retryable})


# List of module names to include as routers
MODULES = [
    "seats",
    "bookings",
]


for mod in MODULES:
    pkg = importlib.import_module(f"seatlock.modules.{mod}.router")
    app.include_router(pkg.router, prefix=f"/{mod}")


@app.get("/")
async def root():
    return {"app": settings.APP_NAME, "status": "ok"}


@app.get("/metrics")
async def metrics():
    # update dynamic gauges before scraping
    await update_queue_depth()
    content = generate_latest()
    return Response(content=content, media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    if settings.FEED_BACKEND == "redis":
        from seatlock.redis_client import redis_client

        try:
            await redis_client.ping()
        except (RedisError, OSError):
            return Response(status_code=503, content="redis unavailable")
    return {"status": "ready"}
