# fightcard_api/app/main.py
from __future__ import annotations

import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .db import Base, engine
from .errors import OfferError
from .settings import settings

# --- Routers ---
from .routers import offers as offers_router
from .routers import billing as billing_router
from .routers import notifications as notifications_router

# --- Logging ---
logger.remove()
logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())

# --- App init ---
app = FastAPI(title="Fight Card API", version="0.1.0")

# --- CORS for frontend ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Domain errors -> HTTP ---
@app.exception_handler(OfferError)
def offer_error_handler(request: Request, exc: OfferError):
    if exc.status_code >= 500:
        logger.warning("{} {} failed: {} ({})", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# --- Health Check ---
@app.get("/health")
def health():
    """Lightweight health check."""
    return {"ok": True}


# --- Startup ---
@app.on_event("startup")
def startup():
    # Only auto-create tables locally; use Alembic in production
    if settings.ENV != "production":
        Base.metadata.create_all(bind=engine)


# --- Include routers ---
app.include_router(offers_router.router)
app.include_router(billing_router.router, prefix="/api")
app.include_router(notifications_router.router)
