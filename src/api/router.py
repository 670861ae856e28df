"""
FastAPI Router for the wallet analytics API
"""

from typing import Dict

from fastapi import APIRouter

from src.api.analytics import router as analytics_router


# Main router, mounted under /api
router = APIRouter()

# Include sub-routers (they already have prefixes)
router.include_router(analytics_router)  # Wallet analytics (API Key auth)


@router.get("/health")
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint (no auth required)
    """
    return {
        "status": "ok",
        "service": "Zcash Wallet Analytics API"
    }
