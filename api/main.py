"""
Lead Distribution Engine API - Main Application.

FastAPI application exposing lead distribution (commit and simulate), lead
distribution history and batch fill status.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from services.settings import load_settings

logging.basicConfig(
    level=getattr(logging, load_settings().log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Lead Distribution Engine API",
    description="Distributes incoming leads to customer batches by territory, priority and capacity",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# TODO: Restrict origins once the admin dashboard has a fixed host
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "lead-distribution-api"
    }


@app.get("/", tags=["Root"])
def root():
    return {
        "message": "Lead Distribution Engine API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


from api.routers import batches, distributions

app.include_router(distributions.router, prefix="/api/v1", tags=["Distributions"])
app.include_router(batches.router, prefix="/api/v1", tags=["Batches"])
