"""
API v1 router setup
"""
from fastapi import APIRouter

from autoreply.api.v1 import conversations

api_v1_router = APIRouter()

api_v1_router.include_router(conversations.router)


@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and available endpoints."""
    return {
        "version": "1.0",
        "endpoints": {
            "manual_reply": "POST /api/v1/businesses/{business_id}/manual-reply",
        },
    }
