import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from movieclub.core.config import get_settings
from movieclub.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from movieclub.core.logging import configure_logging, get_logger, new_request_context
from movieclub.db.init import init_db
from movieclub.routers import admin, cards, casino, lottery, marketplace, trades, wallet

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

ROUTERS = (
    (wallet.router, "wallet"),
    (casino.router, "casino"),
    (lottery.router, "lottery"),
    (cards.router, "cards"),
    (marketplace.router, "marketplace"),
    (trades.router, "trades"),
    (admin.router, "admin"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    await init_db()
    log.info("startup", msg="DB connected", db=settings.mongodb_db_name)
    yield
    log.info("shutdown")


app = FastAPI(title="Movie Club Economy API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Tag the request (and every log line under it) with an id, then log its outcome."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    new_request_context(request_id)
    started = time.perf_counter()
    response = await call_next(request)
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

for router, area in ROUTERS:
    app.include_router(router, prefix=f"/v1/{area}", tags=[area])


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}
