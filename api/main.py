"""
Share Exchange API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.errors import register_exception_handlers
from services.settings import Settings, load_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from LOG_LEVEL."""
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


# Create FastAPI application
app = FastAPI(
    title="Share Exchange API",
    description="Peer-to-peer resale of venture shares: listings, offers, settlement and admin mediation",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "share-exchange-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Share Exchange API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import admin, listings, offers, transfers

app.include_router(listings.router, prefix="/api/v1", tags=["Listings"])
app.include_router(offers.router, prefix="/api/v1", tags=["Offers"])
app.include_router(transfers.router, prefix="/api/v1", tags=["Transfers"])
app.include_router(admin.router, prefix="/api/v1", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn

    # python -m api.main
    configure_logging()
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000)
