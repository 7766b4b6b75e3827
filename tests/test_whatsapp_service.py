"""WhatsApp Cloud API gateway: sending, inbound logging, signatures."""
import json

from autoreply.models import ConversationPause, WhatsAppMessage
from autoreply.services.conversation.conversation_pause_service import ConversationPauseService
from autoreply.services.whatsapp.whatsapp_service import WhatsAppService, extract_content
from factories import image_message, sign, text_message

CUSTOMER = "60123456789"


class TestSendMessage:

    def test_tenant_credentials_and_outbound_row(self, db, whatsapp_service, whatsapp_api, make_business):
        business = make_business(phone_number_id="pid-a", access_token="tenant-token")

        message = whatsapp_service.send_message(CUSTOMER, "Hi there", business)

        request = whatsapp_api.requests[0]
        assert str(request.url) == "https://graph.facebook.com/v24.0/pid-a/messages"
        assert request.headers["Authorization"] == "Bearer tenant-token"
        assert json.loads(request.content) == {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": CUSTOMER,
            "type": "text",
            "text": {"preview_url": False, "body": "Hi there"},
        }

        assert message.message_id == "wamid.out.1"
        assert message.direction == "outbound"
        assert message.from_number == "pid-a"
        assert message.to_number == CUSTOMER
        assert message.status == "sent"
        assert message.content == {"body": "Hi there"}
        assert message.message_metadata["messages"][0]["id"] == "wamid.out.1"

    def test_global_credentials_without_business(self, whatsapp_service, whatsapp_api):
        message = whatsapp_service.send_message(CUSTOMER, "Hi there")

        request = whatsapp_api.requests[0]
        assert request.url.path == "/v24.0/global-phone-id/messages"
        assert request.headers["Authorization"] == "Bearer global-access-token"
        assert message.from_number == "global-phone-id"

    def test_tenant_without_credentials_falls_back_to_global(self, whatsapp_service, whatsapp_api, make_business):
        business = make_business()

        whatsapp_service.send_message(CUSTOMER, "Hi there", business)

        assert whatsapp_api.requests[0].headers["Authorization"] == "Bearer global-access-token"

    def test_provider_error_returns_none(self, db, whatsapp_service, whatsapp_api):
        whatsapp_api.fail_with = 400

        assert whatsapp_service.send_message(CUSTOMER, "Hi there") is None
        assert db.query(WhatsAppMessage).count() == 0

    def test_transport_error_returns_none(self, db, whatsapp_service, whatsapp_api):
        whatsapp_api.raise_error = True

        assert whatsapp_service.send_message(CUSTOMER, "Hi there") is None
        assert db.query(WhatsAppMessage).count() == 0


class TestManualReply:

    def test_manual_reply_pauses_auto_replies(self, db, whatsapp_service):
        message = whatsapp_service.send_manual_reply(CUSTOMER, "Hi, this is the owner")

        assert message is not None
        assert ConversationPauseService.is_paused(db, CUSTOMER)

    def test_failed_manual_reply_does_not_pause(self, db, whatsapp_service, whatsapp_api):
        whatsapp_api.fail_with = 500

        assert whatsapp_service.send_manual_reply(CUSTOMER, "Hi") is None
        assert db.query(ConversationPause).count() == 0


class TestSignature:

    def test_global_secret(self, whatsapp_service):
        body = b'{"entry": []}'

        assert whatsapp_service.verify_signature(sign(body, "global-app-secret"), body)
        assert not whatsapp_service.verify_signature(sign(body, "wrong"), body)

    def test_tenant_secret(self, whatsapp_service, make_business):
        business = make_business(phone_number_id="pid-a", app_secret="tenant-secret")
        body = b'{"entry": []}'

        assert whatsapp_service.verify_signature(sign(body, "tenant-secret"), body, business)
        assert not whatsapp_service.verify_signature(sign(body, "global-app-secret"), body, business)

    def test_tampered_body(self, whatsapp_service):
        signature = sign(b'{"entry": []}', "global-app-secret")

        assert not whatsapp_service.verify_signature(signature, b'{"entry": [1]}')

    def test_signature_without_prefix_is_rejected(self, whatsapp_service):
        body = b"{}"
        bare = sign(body, "global-app-secret")[len("sha256="):]

        assert not whatsapp_service.verify_signature(bare, body)


class TestInbound:

    def test_text_message_is_stored(self, db, whatsapp_service):
        data = text_message("price?", sender=CUSTOMER, message_id="wamid.in.abc")

        message = whatsapp_service.handle_incoming_message(data, "pid-a")

        assert message.message_id == "wamid.in.abc"
        assert message.direction == "inbound"
        assert message.from_number == CUSTOMER
        assert message.to_number == "pid-a"
        assert message.content == {"body": "price?"}
        assert message.message_metadata == data

    def test_same_id_is_stored_once(self, db, whatsapp_service):
        data = text_message("price?", message_id="wamid.in.dup")

        first = whatsapp_service.handle_incoming_message(data)
        second = whatsapp_service.handle_incoming_message(data)

        assert first.id == second.id
        assert db.query(WhatsAppMessage).count() == 1

    def test_malformed_message_returns_none(self, db, whatsapp_service):
        assert whatsapp_service.handle_incoming_message({"type": "text"}) is None
        assert db.query(WhatsAppMessage).count() == 0

    def test_media_content(self):
        assert extract_content(image_message(caption="my unit")) == {
            "id": "media-1",
            "mime_type": "image/jpeg",
            "caption": "my unit",
        }
        assert extract_content({
            "type": "document",
            "document": {"id": "doc-1", "mime_type": "application/pdf", "filename": "quote.pdf"},
        }) == {"id": "doc-1", "mime_type": "application/pdf", "filename": "quote.pdf"}
        assert extract_content({"type": "audio", "audio": {"id": "a-1", "mime_type": "audio/ogg"}}) == {
            "id": "a-1",
            "mime_type": "audio/ogg",
        }

    def test_unknown_type_keeps_raw_payload(self):
        data = {"type": "location", "location": {"latitude": 3.07, "longitude": 101.5}}

        assert extract_content(data) == {"raw": data}


class TestStatusUpdates:

    def test_status_is_updated(self, db, whatsapp_service):
        sent = whatsapp_service.send_message(CUSTOMER, "Hi")

        updated = whatsapp_service.update_message_status({"id": sent.message_id, "status": "read"})

        assert updated.status == "read"

    def test_unknown_or_missing_id_is_a_no_op(self, whatsapp_service):
        assert whatsapp_service.update_message_status({"id": "wamid.nope", "status": "read"}) is None
        assert whatsapp_service.update_message_status({"status": "read"}) is None


def test_owned_http_client_is_closed(db):
    service = WhatsAppService(db)

    service.close()

    assert service.http_client.is_closed
