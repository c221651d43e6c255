from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis import Redis
from rq import Queue
from luvrix.config import settings
from luvrix.db import engine
from luvrix.errors import GiveawayError
from luvrix.logging_setup import configure_logging
from luvrix.routes.system import router as system_router
from luvrix.routes.auth import router as auth_router
from luvrix.routes.giveaways import router as giveaways_router
from luvrix.routes.participation import router as participation_router
from luvrix.routes.winners import router as winners_router
from luvrix.routes.support import router as support_router
from luvrix.services.events import RQEventPublisher
import structlog

configure_logging(settings.log_level)
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    queue = Queue(settings.events_queue, connection=Redis.from_url(settings.redis_url))
    app.state.event_publisher = RQEventPublisher(queue)
    yield
    # Shutdown
    app.state.event_publisher.close()
    await engine.dispose()
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for giveaways, eligibility and winner selection",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system_router)
app.include_router(auth_router)
app.include_router(giveaways_router)
app.include_router(participation_router)
app.include_router(winners_router)
app.include_router(support_router)

@app.exception_handler(GiveawayError)
async def giveaway_error_handler(request: Request, exc: GiveawayError):
    log.info("request_rejected", error=exc.__class__.__name__, detail=exc.message, status=exc.status_code, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
