"""
Tableside Orders — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from tableside.api import health, kitchen, orders
from tableside.core.config import get_settings
from tableside.core.errors import OrderingError
from tableside.core.redis_client import close_redis
from tableside.db.database import Base, engine
from tableside.middleware.auth import StaffAuthMiddleware
from tableside.middleware.idempotency import IdempotencyMiddleware
from tableside.models import catalog, order  # noqa: F401  (register tables on Base)

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.SERVICE_NAME, settings.SERVICE_VERSION)
    yield
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Tableside Orders",
    description="Table ordering core: cart reconciliation, kitchen status tracking and incremental KOT printing.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: auth → idempotency → route
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(StaffAuthMiddleware)

if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

app.include_router(orders.tables_router)
app.include_router(orders.restaurant_router)
app.include_router(orders.router)
app.include_router(kitchen.router)
app.include_router(health.router)


@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({
            "detail": exc.detail,
            "error": exc.code,
            "retryable": exc.retryable,
            **exc.extra,
        }),
    )


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
