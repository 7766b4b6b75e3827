"""HTTP surface: webhook handshake, delivery, manual replies, health."""
import json
import logging

from autoreply.models import AutoReplyLog, ConversationPause
from factories import sign, text_message, webhook_payload

CUSTOMER = "60123456789"


def post_webhook(client, payload, signature=None, secret=None):
    raw_body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    if secret is not None:
        signature = sign(raw_body, secret)
    if signature is not None:
        headers["X-Hub-Signature-256"] = signature
    return client.post("/webhooks/whatsapp", content=raw_body, headers=headers)


class TestVerification:

    def test_global_token_echoes_challenge(self, client):
        response = client.get("/webhooks/whatsapp", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "global-verify-token",
            "hub.challenge": "1158201444",
        })

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_underscore_parameter_names(self, client):
        response = client.get("/webhooks/whatsapp", params={
            "hub_mode": "subscribe",
            "hub_verify_token": "global-verify-token",
            "hub_challenge": "42",
        })

        assert response.status_code == 200
        assert response.text == "42"

    def test_tenant_token(self, client, make_business):
        make_business(phone_number_id="pid-a", webhook_verify_token="tenant-verify")

        response = client.get("/webhooks/whatsapp", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "tenant-verify",
            "hub.challenge": "abc",
        })

        assert response.status_code == 200
        assert response.text == "abc"

    def test_wrong_token(self, client):
        response = client.get("/webhooks/whatsapp", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "nope",
            "hub.challenge": "abc",
        })

        assert response.status_code == 403

    def test_wrong_mode(self, client):
        response = client.get("/webhooks/whatsapp", params={
            "hub.mode": "unsubscribe",
            "hub.verify_token": "global-verify-token",
            "hub.challenge": "abc",
        })

        assert response.status_code == 403


class TestDelivery:

    def test_reply_sent_and_ok_returned(self, client, db, whatsapp_api, make_business):
        make_business()

        response = post_webhook(client, webhook_payload([text_message("harga?", sender=CUSTOMER)]))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert "Cleaning: RM50" in whatsapp_api.bodies_to(CUSTOMER)[0]
        assert db.query(AutoReplyLog).count() == 1

    def test_nothing_actionable_still_ok(self, client):
        response = post_webhook(client, {"object": "whatsapp_business_account", "entry": []})

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_invalid_json_is_rejected(self, client):
        response = client.post("/webhooks/whatsapp", content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    def test_correlation_id_header(self, client):
        response = post_webhook(client, {"entry": []})

        assert response.headers["X-Correlation-ID"]


class TestSignatureCheck:

    def test_valid_global_signature(self, client, whatsapp_api, make_business):
        make_business()

        response = post_webhook(
            client, webhook_payload([text_message("harga?", sender=CUSTOMER)]), secret="global-app-secret"
        )

        assert response.status_code == 200
        assert len(whatsapp_api.requests) == 1

    def test_mismatched_signature_is_rejected(self, client, db, whatsapp_api, make_business):
        make_business()

        response = post_webhook(
            client, webhook_payload([text_message("harga?", sender=CUSTOMER)]), secret="someone-else"
        )

        assert response.status_code == 401
        assert whatsapp_api.requests == []
        assert db.query(AutoReplyLog).count() == 0

    def test_tenant_secret_is_used_for_routed_delivery(self, client, make_business):
        make_business(phone_number_id="pid-a", app_secret="tenant-secret")
        payload = webhook_payload([text_message("harga?", sender=CUSTOMER)], phone_number_id="pid-a")

        assert post_webhook(client, payload, secret="global-app-secret").status_code == 401
        assert post_webhook(client, payload, secret="tenant-secret").status_code == 200

    def test_bad_signature_wins_over_malformed_body(self, client):
        raw_body = b"not json"

        response = client.post("/webhooks/whatsapp", content=raw_body, headers={
            "Content-Type": "application/json",
            "X-Hub-Signature-256": sign(raw_body, "someone-else"),
        })

        assert response.status_code == 401

    def test_signed_malformed_body_is_still_rejected(self, client):
        raw_body = b'{"entry": "not a list"}'

        response = client.post("/webhooks/whatsapp", content=raw_body, headers={
            "Content-Type": "application/json",
            "X-Hub-Signature-256": sign(raw_body, "global-app-secret"),
        })

        assert response.status_code == 400

    def test_missing_signature_is_accepted(self, client, whatsapp_api, make_business):
        make_business()

        response = post_webhook(client, webhook_payload([text_message("harga?", sender=CUSTOMER)]))

        assert response.status_code == 200
        assert len(whatsapp_api.requests) == 1


class TestManualReply:

    def test_manual_reply_pauses_auto_reply(self, client, db, whatsapp_api, make_business):
        business = make_business(phone_number_id="pid-a")

        response = client.post(
            f"/api/v1/businesses/{business.id}/manual-reply",
            json={"to": CUSTOMER, "message": "Hi, owner here. I'll come by at 3pm."},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "sent"
        assert whatsapp_api.sent[0][2] == "/v24.0/pid-a/messages"
        assert db.query(ConversationPause).filter(ConversationPause.phone_number == CUSTOMER).count() == 1

        post_webhook(client, webhook_payload([text_message("harga?", sender=CUSTOMER)], phone_number_id="pid-a"))

        assert len(whatsapp_api.bodies_to(CUSTOMER)) == 1

    def test_unknown_business(self, client):
        response = client.post("/api/v1/businesses/999/manual-reply", json={"to": CUSTOMER, "message": "Hi"})

        assert response.status_code == 404

    def test_provider_failure(self, client, db, whatsapp_api, make_business):
        business = make_business()
        whatsapp_api.fail_with = 400

        response = client.post(f"/api/v1/businesses/{business.id}/manual-reply", json={"to": CUSTOMER, "message": "Hi"})

        assert response.status_code == 502
        assert db.query(ConversationPause).count() == 0

    def test_empty_message_is_invalid(self, client, make_business):
        business = make_business()

        response = client.post(f"/api/v1/businesses/{business.id}/manual-reply", json={"to": CUSTOMER, "message": ""})

        assert response.status_code == 422


class TestHealth:

    def test_basic(self, client):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed(self, client):
        response = client.get("/health/detailed")

        assert response.json() == {
            "api": "healthy",
            "database": "healthy",
            "redis": "healthy",
            "overall": "healthy",
        }


class TestRequestLog:

    @staticmethod
    def webhook_record(caplog):
        return next(
            record for record in caplog.records
            if record.name == "autoreply.core.middleware" and "/webhooks/whatsapp" in record.getMessage()
        )

    def test_webhook_line_carries_tenant_and_outcomes(self, client, make_business, caplog):
        make_business(phone_number_id="pid-a")
        payload = webhook_payload(
            [text_message("harga?", sender=CUSTOMER), text_message("harga lagi?", sender=CUSTOMER)],
            phone_number_id="pid-a",
        )

        with caplog.at_level(logging.INFO, logger="autoreply.core.middleware"):
            post_webhook(client, payload)

        record = self.webhook_record(caplog)
        assert record.phone_number_id == "pid-a"
        assert record.message_count == 2
        assert record.outcomes == {"replied": 1, "rate_limited": 1}
        assert "2 message(s) for pid-a" in record.getMessage()

    def test_rejected_delivery_logged_as_warning(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="autoreply.core.middleware"):
            client.post("/webhooks/whatsapp", content=b"not json", headers={"Content-Type": "application/json"})

        record = self.webhook_record(caplog)
        assert record.levelno == logging.WARNING
        assert record.status_code == 400
        assert not hasattr(record, "outcomes")
