"""Main FastAPI application."""

import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paylink.config import settings
from paylink.database import AsyncSessionLocal, dispose_engine
from paylink.api import events, payment_links
from paylink.services.chain_service import chain_service
from paylink.services.polling_service import ReconciliationPoller

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="PayLink API",
    version="1.0.0",
    description="USDC payment links on Polygon and Solana, verified by on-chain reconciliation"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    payment_links.router,
    prefix=f"{settings.API_V1_PREFIX}/payment-links",
    tags=["payment-links"]
)
app.include_router(
    events.router,
    prefix=f"{settings.API_V1_PREFIX}",
    tags=["events"]
)

poller = ReconciliationPoller(AsyncSessionLocal)


@app.on_event("startup")
async def startup():
    """Application startup tasks."""
    logger.info(f"PayLink API starting (environment: {settings.ENVIRONMENT})")
    if settings.ENABLE_AUTO_POLLING:
        poller.start()


@app.on_event("shutdown")
async def shutdown():
    """Application shutdown tasks."""
    await poller.stop()
    await chain_service.aclose()
    await dispose_engine()
    logger.info("PayLink API shutting down")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "PayLink API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "polling": poller.is_running,
    }


# Global exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )
