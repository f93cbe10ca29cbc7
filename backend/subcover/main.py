from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subcover.api.routes import (
    automation,
    health,
    lectures,
    leaves,
    notifications,
    substitutes,
    teachers,
)
from subcover.core.config import get_settings
from subcover.core.exceptions import AppError
from subcover.db.bootstrap import ensure_runtime_schema
from subcover.db.session import SessionLocal, engine, shares_single_connection
from subcover.services.escalation import EscalationScheduler

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_runtime_schema()
    scheduler = EscalationScheduler(SessionLocal, settings=settings)
    app.state.escalation_scheduler = scheduler
    if settings.escalation_enabled and shares_single_connection(engine):
        logger.warning("Escalation scheduler not started: the in-memory database has a single shared connection")
    elif settings.escalation_enabled:
        scheduler.start()
    else:
        logger.info("Escalation scheduler disabled by configuration")
    try:
        yield
    finally:
        scheduler.stop()


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(teachers.router, prefix=f"{settings.api_prefix}/teachers", tags=["teachers"])
app.include_router(leaves.router, prefix=settings.api_prefix, tags=["leaves"])
app.include_router(lectures.router, prefix=settings.api_prefix, tags=["lectures"])
app.include_router(substitutes.router, prefix=settings.api_prefix, tags=["substitutes"])
app.include_router(automation.router, prefix=settings.api_prefix, tags=["automation"])
app.include_router(notifications.router, prefix=settings.api_prefix, tags=["notifications"])
