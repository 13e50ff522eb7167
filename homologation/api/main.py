"""
FastAPI Gateway

HTTP API for vehicle homologation submissions: public intake under
/v1/submissions and administrator review under /v1/admin/submissions.
"""

import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homologation import __version__
from homologation.api.routes import v1_admin, v1_submissions
from homologation.config import config

logger = logging.getLogger(__name__)

# ============================================
# App Setup
# ============================================

app = FastAPI(
    title="Homologation API",
    description="Vehicle homologation intake and review workflow",
    version=__version__,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_submissions.router, prefix="/v1")
app.include_router(v1_admin.router, prefix="/v1")


# ============================================
# Endpoints
# ============================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "Homologation API",
        "status": "healthy",
        "version": __version__,
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "store_backend": config.store_backend,
    }


# ============================================
# Run Server
# ============================================

if __name__ == "__main__":
    from homologation.utils.logging_setup import setup_logging
    setup_logging()
    import uvicorn
    uvicorn.run(
        "homologation.api.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.debug,
    )
