# autoreply/webhooks/router.py
from fastapi import APIRouter

webhook_router = APIRouter()


# Import handlers inside a function to avoid circular imports
def register_handlers():
    from autoreply.webhooks import whatsapp_handler
    webhook_router.include_router(whatsapp_handler.router)


register_handlers()


@webhook_router.get("/")
async def webhook_info():
    return {
        "endpoints": {
            "whatsapp": "/webhooks/whatsapp",
        },
        "note": "GET for the Meta verification handshake, POST for message events"
    }
