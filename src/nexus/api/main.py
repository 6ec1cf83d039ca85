from __future__ import annotations

from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
import os
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.ai import router as ai_router
from .routers.invites import router as invites_router
from .routers.organizations import router as organizations_router
from ..infrastructure.store import get_store
from ..observability.metrics import metrics_middleware_factory
from ..services.errors import NexusError, RateLimited

load_dotenv()  # NEXUS_AI_API_KEY, JWT_SECRET, SMTP settings, etc.

logger = logging.getLogger("nexus.api")

app = FastAPI(title="Nexus AI Assist API", version="0.1.0")

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

# Routers
app.include_router(ai_router)
app.include_router(organizations_router)
app.include_router(invites_router)

# Also expose the same routers under /api
app.include_router(ai_router, prefix="/api")
app.include_router(organizations_router, prefix="/api")
app.include_router(invites_router, prefix="/api")


def _cors_origins() -> list[str]:
    raw = os.getenv("NEXUS_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


@app.exception_handler(NexusError)
async def nexus_error_handler(_request: Request, exc: NexusError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after_seconds:
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return _error(exc.status_code, exc.message, headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    field = ""
    if errors:
        loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
        field = ".".join(loc)
    return _error(400, f"Invalid input: {field}" if field else "Invalid input")


@app.exception_handler(Exception)
async def unexpected_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", exc)
    return _error(500, "An unexpected error occurred")


@app.get("/")
def root():
    return {"name": "Nexus AI Assist API", "version": "0.1.0"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "store": get_store().kind,
        },
    }


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/api/health")
def api_health():
    return health()
