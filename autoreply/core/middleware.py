# autoreply/core/middleware.py
"""Request tracing and logging middleware"""
import logging
import time
import uuid
from collections import Counter

from starlette.requests import Request

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


async def correlation_id_middleware(request: Request, call_next):
    """Tag every request with a correlation id, reusing the caller's if sent"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


def webhook_context(request: Request) -> dict:
    """Tenant and per-message outcomes the webhook handler left on request.state"""
    context = {}
    phone_number_id = getattr(request.state, "phone_number_id", None)
    if phone_number_id:
        context["phone_number_id"] = phone_number_id

    outcomes = getattr(request.state, "webhook_outcomes", None)
    if outcomes is not None:
        context["message_count"] = len(outcomes)
        context["outcomes"] = dict(Counter(outcomes))
    return context


async def request_logging_middleware(request: Request, call_next):
    """One line per request; webhook deliveries also carry tenant and outcomes"""
    start_time = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

    extra = {
        "correlation_id": getattr(request.state, "correlation_id", "unknown"),
        "status_code": response.status_code,
        "duration_ms": duration_ms,
    }
    extra.update(webhook_context(request))

    summary = f"{request.method} {request.url.path} -> {response.status_code} in {duration_ms}ms"
    if "message_count" in extra:
        summary += f" ({extra['message_count']} message(s) for {extra.get('phone_number_id', 'global number')})"

    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(level, summary, extra=extra)

    return response
