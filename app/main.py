"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.errors import (
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from app.middleware import BodySizeLimitMiddleware, SecurityHeadersMiddleware
from app.routers import admin, contributor, jobs, payments
from app.services.blob_store import build_blob_store
from app.services.razorpay import build_payment_processor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build outbound adapters, close them on shutdown."""
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.payment_timeout_seconds, read=settings.blob_store_timeout_seconds
        )
    )
    app.state.http_client = client
    app.state.blob_store = build_blob_store(client)
    app.state.payment_processor = build_payment_processor(client)
    if not settings.razorpay_configured:
        logger.warning("Razorpay credentials missing; payment orders will fail")
    logger.info("Blob store backend: %s", settings.blob_store_backend)

    yield

    await client.aclose()


app = FastAPI(
    title="Job Marketplace",
    description="Job lifecycle, split payments and revisions for a freelance marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - restrict to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(BodySizeLimitMiddleware)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Routers
app.include_router(jobs.router)
app.include_router(contributor.router)
app.include_router(payments.router)
app.include_router(admin.router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
