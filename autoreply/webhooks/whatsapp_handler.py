# autoreply/webhooks/whatsapp_handler.py
"""WhatsApp Cloud API webhook: verification handshake and event delivery"""
import json
import logging

import redis
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from autoreply.api.dependencies import get_auto_reply_service, get_redis_client, get_whatsapp_service
from autoreply.config.database import get_db
from autoreply.schemas.webhook_events import WhatsAppWebhookPayload
from autoreply.services.auto_reply.auto_reply_service import AutoReplyService
from autoreply.services.tenant.tenant_router import TenantRouter
from autoreply.services.webhook.whatsapp_webhook_service import WhatsAppWebhookService
from autoreply.services.whatsapp.credential_store import CredentialStore
from autoreply.services.whatsapp.whatsapp_service import WhatsAppService

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"


def _query_param(request: Request, name: str):
    """Meta sends hub.mode, some proxies rewrite it to hub_mode"""
    return request.query_params.get(f"hub.{name}") or request.query_params.get(f"hub_{name}")


def _parse_payload(raw_body: bytes):
    """Returns (payload, None) or (None, error)"""
    try:
        return WhatsAppWebhookPayload.model_validate(json.loads(raw_body)), None
    except (ValueError, ValidationError) as e:
        return None, e


@router.get("/whatsapp")
def verify_whatsapp_webhook(request: Request, db: Session = Depends(get_db)):
    """Subscription handshake: echo hub.challenge when the verify token matches"""
    mode = _query_param(request, "mode")
    token = _query_param(request, "verify_token")
    challenge = _query_param(request, "challenge")

    if mode != "subscribe" or not token:
        logger.warning("WhatsApp webhook verification failed: bad mode or missing token")
        raise HTTPException(status_code=403, detail="Verification failed")

    if CredentialStore().matches_global_verify_token(token):
        logger.info("WhatsApp webhook verified with global token")
        return PlainTextResponse(challenge or "")

    business = TenantRouter(db).get_business_by_verify_token(token)
    if business:
        logger.info(f"WhatsApp webhook verified for business {business.id}")
        return PlainTextResponse(challenge or "")

    logger.warning("WhatsApp webhook verification failed: unknown verify token")
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("/whatsapp")
async def handle_whatsapp_webhook(
        request: Request,
        db: Session = Depends(get_db),
        redis_client: redis.Redis = Depends(get_redis_client),
        whatsapp_service: WhatsAppService = Depends(get_whatsapp_service),
        auto_reply_service: AutoReplyService = Depends(get_auto_reply_service),
):
    """Validate and process one webhook delivery; always 200 once the body parses"""
    raw_body = await request.body()
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    payload, parse_error = _parse_payload(raw_body)

    service = WhatsAppWebhookService(
        db,
        redis_client,
        whatsapp_service=whatsapp_service,
        auto_reply_service=auto_reply_service,
    )

    # Provenance first: an unparseable body is checked against the global secret
    signature = request.headers.get(SIGNATURE_HEADER)
    if signature is not None:
        valid = await run_in_threadpool(service.verify_signature, signature, raw_body, payload)
        if not valid:
            logger.warning("Invalid WhatsApp webhook signature", extra={"correlation_id": correlation_id})
            raise HTTPException(status_code=401, detail="Invalid signature")

    if payload is None:
        logger.warning(
            f"Malformed WhatsApp webhook body: {str(parse_error)}",
            extra={"correlation_id": correlation_id},
        )
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    request.state.phone_number_id = payload.first_phone_number_id()
    try:
        results = await run_in_threadpool(service.handle_payload, payload)
        request.state.webhook_outcomes = [result.outcome.value for result in results]
        logger.info(
            f"Processed WhatsApp webhook with {len(results)} message(s)",
            extra={"correlation_id": correlation_id},
        )
    except Exception as e:
        logger.exception(
            f"Error handling WhatsApp webhook: {str(e)}",
            extra={"correlation_id": correlation_id},
        )

    return {"status": "ok"}
