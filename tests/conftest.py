"""Pytest configuration and fixtures."""
import json
import os

from cryptography.fernet import Fernet

# Settings are cached on first import, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["WHATSAPP_API_URL"] = "https://graph.facebook.com/v24.0"
os.environ["WHATSAPP_PHONE_NUMBER_ID"] = "global-phone-id"
os.environ["WHATSAPP_ACCESS_TOKEN"] = "global-access-token"
os.environ["WHATSAPP_APP_SECRET"] = "global-app-secret"
os.environ["WHATSAPP_VERIFY_TOKEN"] = "global-verify-token"
os.environ["OPENAI_API_KEY"] = ""
os.environ["AUTO_REPLY_RATE_LIMIT_MODE"] = "burst"
os.environ["AUTO_REPLY_BURST_WINDOW_SECONDS"] = "5"
os.environ["DEFAULT_TIMEZONE"] = "UTC"

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from autoreply.config.database import SessionLocal, engine, get_db
from autoreply.models import Base, Business, WhatsAppStatus


class FakeWhatsAppAPI:
    """Records outbound Cloud API calls and answers like Graph API does"""

    def __init__(self):
        self.requests = []
        self.fail_with = None
        self.raise_error = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error:
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"message": "rejected"}})
        return httpx.Response(
            200,
            json={
                "messaging_product": "whatsapp",
                "contacts": [{"wa_id": json.loads(request.content)["to"]}],
                "messages": [{"id": f"wamid.out.{len(self.requests)}"}],
            },
        )

    @property
    def sent(self):
        """(to, body, url path, authorization header) per request"""
        result = []
        for request in self.requests:
            body = json.loads(request.content)
            result.append((body["to"], body["text"]["body"], request.url.path, request.headers["Authorization"]))
        return result

    def bodies_to(self, phone):
        return [body for to, body, _, _ in self.sent if to == phone]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis()


@pytest.fixture
def whatsapp_api():
    return FakeWhatsAppAPI()


@pytest.fixture
def http_client(whatsapp_api):
    client = httpx.Client(transport=httpx.MockTransport(whatsapp_api))
    yield client
    client.close()


@pytest.fixture
def whatsapp_service(db, http_client):
    from autoreply.services.whatsapp.whatsapp_service import WhatsAppService
    return WhatsAppService(db, http_client=http_client)


@pytest.fixture
def make_business(db):
    """Create a tenant; connected ones get encrypted per-tenant credentials"""

    def _make_business(
            name="Kedai Aircond",
            phone_number_id=None,
            services=None,
            areas=None,
            operating_hours=None,
            booking_method="WhatsApp us your address and preferred date",
            is_onboarded=True,
            llm_enabled=False,
            access_token=None,
            app_secret=None,
            **fields,
    ) -> Business:
        business = Business(
            name=name,
            services=services if services is not None else [{"name": "Cleaning", "price": "50"}],
            areas=areas if areas is not None else ["Shah Alam", "Klang"],
            operating_hours=operating_hours if operating_hours is not None else {},
            booking_method=booking_method,
            is_onboarded=is_onboarded,
            llm_enabled=llm_enabled,
            **fields,
        )
        if phone_number_id:
            business.phone_number_id = phone_number_id
            business.wa_status = WhatsAppStatus.CONNECTED
            business.set_access_token(access_token or f"token-{phone_number_id}")
            if app_secret:
                business.set_app_secret(app_secret)
        db.add(business)
        db.commit()
        db.refresh(business)
        return business

    return _make_business


@pytest.fixture
def client(db, redis_client, http_client):
    from autoreply.api.dependencies import get_llm_service, get_redis_client, get_whatsapp_http_client
    from autoreply.main import app
    from autoreply.services.ai.llm_service import LLMService

    def override_get_db():
        yield db

    def override_http_client():
        yield http_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = lambda: redis_client
    app.dependency_overrides[get_whatsapp_http_client] = override_http_client
    app.dependency_overrides[get_llm_service] = lambda: LLMService(client=None)

    yield TestClient(app)

    app.dependency_overrides.clear()
