# autoreply/api/dependencies.py
"""Shared FastAPI dependencies for the webhook and API routes"""
from typing import Iterator

import httpx
import redis
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from autoreply.config.database import get_db
from autoreply.config.redis import get_redis
from autoreply.config.settings import settings
from autoreply.models.business import Business
from autoreply.services.ai.llm_service import LLMService
from autoreply.services.auto_reply.auto_reply_service import AutoReplyService
from autoreply.services.whatsapp.whatsapp_service import WhatsAppService


def get_redis_client() -> redis.Redis:
    return get_redis()


def get_whatsapp_http_client() -> Iterator[httpx.Client]:
    """One HTTP client per request, closed when the request finishes"""
    client = httpx.Client(timeout=settings.WHATSAPP_TIMEOUT_SECONDS)
    try:
        yield client
    finally:
        client.close()


def get_llm_service() -> LLMService:
    return LLMService()


def get_whatsapp_service(
        db: Session = Depends(get_db),
        http_client: httpx.Client = Depends(get_whatsapp_http_client),
) -> WhatsAppService:
    return WhatsAppService(db, http_client=http_client)


def get_auto_reply_service(llm_service: LLMService = Depends(get_llm_service)) -> AutoReplyService:
    return AutoReplyService(llm_service=llm_service)


def get_business_or_404(business_id: int, db: Session = Depends(get_db)) -> Business:
    business = db.query(Business).filter(Business.id == business_id).first()
    if not business:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Business {business_id} not found",
        )
    return business
