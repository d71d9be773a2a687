"""FieldSync Server - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fieldsync.config import settings
from fieldsync.database import init_db
from fieldsync.errors import ApiError, error_envelope

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and create tables on startup."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    logger.info("%s started, database %s", settings.server_name, settings.db_url)
    yield


app = FastAPI(
    title="FieldSync",
    description="Offline sync and device management backend for field verification apps",
    version=API_VERSION,
    lifespan=lifespan,
)

# CORS - the mobile app and admin console are served from other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error envelopes ---

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_envelope("Invalid request", "VALIDATION_ERROR", {"errors": errors}),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = "NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


# --- Register API routers ---
from fieldsync.api.auth import router as auth_router  # noqa: E402
from fieldsync.api.devices import router as devices_router  # noqa: E402
from fieldsync.api.forms import router as forms_router  # noqa: E402
from fieldsync.api.sync import router as sync_router  # noqa: E402

API_PREFIX = "/api/mobile"

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(devices_router, prefix=API_PREFIX)
app.include_router(sync_router, prefix=API_PREFIX)
app.include_router(forms_router, prefix=API_PREFIX)


@app.get("/")
def root():
    """Health check / server info."""
    return {
        "name": settings.server_name,
        "version": API_VERSION,
        "apiVersion": settings.api_version,
        "status": "running",
    }


@app.get("/api/mobile/health")
def health():
    return {"status": "ok"}
