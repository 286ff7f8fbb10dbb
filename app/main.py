from __future__ import annotations

import hmac
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import state
from app.api.router import api_router
from config import load_settings

logger = logging.getLogger(__name__)

# Fail loudly on invalid configuration at import time; startup re-reads the env.
_boot_settings = load_settings()

app = FastAPI(title="RateDem analytics server")


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    root.setLevel(level)


@app.on_event("startup")
def _startup_init_state() -> None:
    settings = load_settings()
    _configure_logging(settings.log_level)
    state.startup_init_state(settings)
    if not settings.admin_token:
        logger.warning("RATEDEM_ADMIN_TOKEN is not set; admin endpoints will reject every request")


@app.on_event("shutdown")
def _shutdown_state() -> None:
    state.shutdown_state()


app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_boot_settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _requires_admin(method: str, path: str) -> bool:
    if path == "/api/admin" or path.startswith("/api/admin/"):
        return True
    if method == "DELETE" and path.startswith("/api/analytics"):
        # Presence "leave" is a visitor call, not a reset.
        return not path.startswith("/api/analytics/active")
    if method in ("PUT", "DELETE") and path.startswith("/api/officials/") and path.endswith("/image"):
        return True
    return False


def _provided_token(request: Request) -> str:
    token = (request.headers.get("X-Admin-Token") or "").strip()
    if token:
        return token
    auth = (request.headers.get("Authorization") or "").strip()
    if auth[:7].lower() == "bearer ":
        return auth[7:].strip()
    return ""


@app.middleware("http")
async def _admin_guard_middleware(request: Request, call_next):
    """Require RATEDEM_ADMIN_TOKEN on admin and reset/override calls.

    With no token configured every admin call is rejected.
    """
    path = request.url.path or ""
    method = (request.method or "GET").upper()
    if method == "OPTIONS" or not _requires_admin(method, path):
        return await call_next(request)

    required_token = state.get_settings().admin_token if state.is_initialized() else ""
    provided = _provided_token(request)
    if not required_token or not provided:
        return JSONResponse(status_code=401, content={"detail": "Unauthorized: admin token required"})
    if not hmac.compare_digest(provided.encode("utf-8"), required_token.encode("utf-8")):
        logger.warning("rejected admin call with invalid token: %s %s", method, path)
        return JSONResponse(status_code=401, content={"detail": "Unauthorized: invalid admin token"})

    return await call_next(request)


app.include_router(api_router)
