from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jornify.core.logging import configure_logging
from jornify.models import employee, monthly_signature, record_event, time_record  # noqa: F401
from jornify.routers.auth import router as auth_router
from jornify.routers.employees import router as employees_router
from jornify.routers.reports import router as reports_router
from jornify.routers.signatures import router as signatures_router
from jornify.routers.time_records import router as time_records_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title="Jornify",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(employees_router)
app.include_router(time_records_router)
app.include_router(signatures_router)
app.include_router(reports_router)


@app.get("/")
def root():
    return {"status": "Jornify running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
