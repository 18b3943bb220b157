"""
OnboardX — FastAPI Application Entry Point

Aggregates the routers, configures CORS and request logging, maps the
service's exceptions onto JSON error bodies, and owns the in-memory
session registry.
"""
import os
import time
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException

from onboardx.config import get_settings
from onboardx.exceptions import (
    ConfigurationError, SessionBusy, SessionClosed, SessionNotFound, UpstreamError,
)
from onboardx.routes import rpc_router, session_router
from onboardx.services.session_registry import SessionRegistry
from onboardx.utils.logger import LOG_FILE_NAME, log_event

settings = get_settings()

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Conversational bank account onboarding: employment, PAN/Aadhaar verification, "
        "income-based risk scoring, face liveness, account creation and e-mail delivery."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)
app.state.sessions = SessionRegistry()

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


def _cors_headers(request: Request) -> dict:
    """CORS headers for hand-built responses; one origin per response."""
    headers = {
        "Access-Control-Allow-Headers": ", ".join(settings.CORS_ALLOW_HEADERS),
        "Access-Control-Allow-Methods": "POST, GET, DELETE, OPTIONS",
    }
    if "*" in settings.CORS_ORIGINS:
        headers["Access-Control-Allow-Origin"] = "*"
    else:
        origin = request.headers.get("origin")
        if origin in settings.CORS_ORIGINS:
            headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers


@app.on_event("startup")
def on_startup():
    """Log boot info."""
    os.makedirs(settings.LOG_DIR, exist_ok=True)

    boot_msg = (
        f"\n{'='*60}\n"
        f"  {settings.APP_NAME} v{settings.APP_VERSION}\n"
        f"  TIME: {datetime.now().isoformat()}\n"
        f"  PROVIDER: {settings.COMPLETION_PROVIDER}\n"
        f"  GATEWAY KEY: {'[OK] Loaded' if settings.AI_GATEWAY_API_KEY else '[!] Missing'}\n"
        f"  GEMINI KEY: {'[OK] Loaded' if settings.GEMINI_API_KEY else '[!] Missing'}\n"
        f"  EMAIL KEY: {'[OK] Loaded' if settings.EMAIL_API_KEY else '[!] Missing'}\n"
        f"  DEBUG: {settings.DEBUG}\n"
        f"{'='*60}\n"
    )
    print(boot_msg)

    with open(os.path.join(settings.LOG_DIR, LOG_FILE_NAME), "a", encoding="utf-8") as f:
        f.write(boot_msg)


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Short-circuit OPTIONS; log every API request with timing."""
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=_cors_headers(request))

    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        print(f"  -> {request.method} {request.url.path} -> {response.status_code} ({duration}ms)")

    return response


# ─── Error Mapping ───────────────────────────────────────────────────
def _error(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"error": message}, headers=_cors_headers(request)
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    log_event("config", str(exc))
    return _error(request, 500, "Service is not configured")


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    return _error(request, exc.public_status, exc.public_message)


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return _error(request, 404, "Session not found")


@app.exception_handler(SessionBusy)
async def session_busy_handler(request: Request, exc: SessionBusy):
    return _error(request, 409, "Another request is still in progress for this session")


@app.exception_handler(SessionClosed)
async def session_closed_handler(request: Request, exc: SessionClosed):
    return _error(request, 410, "Session has been closed")


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return _error(request, exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error(request, 422, "Invalid request body")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_event("server", f"Unhandled {type(exc).__name__}: {exc}")
    return _error(request, 500, str(exc) or "Unknown error")


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(rpc_router)
app.include_router(session_router)


@app.get("/health", tags=["Health"])
def deep_health():
    """Detailed health check including dependency statuses."""
    provider_key = (
        settings.GEMINI_API_KEY if settings.COMPLETION_PROVIDER == "gemini" else settings.AI_GATEWAY_API_KEY
    )
    return {
        "status": "healthy" if provider_key else "degraded",
        "provider": settings.COMPLETION_PROVIDER,
        "ai_completion": "available" if provider_key else "unavailable",
        "email_validation": "available" if settings.ABSTRACT_EMAIL_API_KEY else "fail-open",
        "email_dispatch": "available" if settings.EMAIL_API_KEY else "unavailable",
        "live_sessions": len(app.state.sessions),
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
