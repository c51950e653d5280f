import asyncio

from fastapi.testclient import TestClient

from tests.conftest import WEBHOOK_TOKEN, inbound_payload, post_inbound, register
from tests.fakes import FAIL_MARKER, build_test_container
from voicenotes.core.services.email_service import compute_webhook_signature
from voicenotes.main import create_app


class TestSignature:
    def test_unsigned_request_rejected(self, client, container):
        response = post_inbound(client, inbound_payload(), token=None)
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid webhook signature"}
        assert container.users.rows == {}

    def test_wrong_secret_rejected(self, client):
        assert post_inbound(client, inbound_payload(), token="someone-else").status_code == 401

    def test_malformed_json(self, client):
        body = b"{not json"
        response = client.post(
            "/api/webhook/inbound",
            content=body,
            headers={"X-Postmark-Signature": compute_webhook_signature(body, WEBHOOK_TOKEN)},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Malformed inbound email payload"}


class TestInboundFlow:
    def test_unknown_sender(self, client, outbox):
        response = post_inbound(client, inbound_payload(sender="new@x.com"))
        assert response.status_code == 200
        assert response.json()["status"] == "registration_sent"
        assert outbox.subjects() == ["Complete your Voice Notes registration"]

    def test_registered_sender_end_to_end(self, client, container, outbox):
        headers = register(client)
        response = post_inbound(client, inbound_payload(attachments=[("memo.mp3", "audio/mpeg", b"ID3-memo")]))
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processed"
        assert body["succeeded"] == 1
        assert body["failed"] == 0
        [result] = body["results"]
        assert result["status"] == "ok"

        note = client.get(f"/api/notes/{result['noteId']}", headers=headers).json()
        assert note["originalFilename"] == "memo.mp3"
        assert note["status"] == "completed"
        assert note["transcription"] == "Xylophone zebra quokka"
        assert note["categories"] == ["general"]
        assert note["metadata"]["contentType"] == "audio/mpeg"

        audio = client.get(f"/api/audio/stream/{result['noteId']}", headers=headers)
        assert audio.content == b"ID3-memo"

        assert outbox.to("demo@x.com")[-1]["Subject"] == "Voice Notes: 1 transcribed successfully"
        me = client.get("/api/auth/me", headers=headers).json()
        assert me["usage"]["totalNotes"] == 1

    def test_partial_failure(self, client):
        register(client)
        response = post_inbound(
            client,
            inbound_payload(
                attachments=[
                    ("ok.mp3", "audio/mpeg", b"ID3-ok"),
                    ("bad.mp3", "audio/mpeg", FAIL_MARKER + b"-bad"),
                ]
            ),
        )
        body = response.json()
        assert response.status_code == 200
        assert (body["succeeded"], body["failed"]) == (1, 1)
        assert body["results"][1]["error"]

    def test_no_audio(self, client, outbox):
        register(client)
        response = post_inbound(client, inbound_payload(attachments=[("a.txt", "text/plain", b"hi")]))
        assert response.json()["status"] == "no_audio"
        assert outbox.subjects()[-1] == "No audio file found in your email"

    def test_missing_sender(self, client):
        assert post_inbound(client, {"Subject": "hi"}).status_code == 400

    def test_unsigned_accepted_when_verification_disabled(self, settings):
        relaxed = settings.model_copy(update={"webhook_signature_required": False})
        container = build_test_container(relaxed)
        with TestClient(create_app(container)) as client:
            response = post_inbound(client, inbound_payload(sender="new@x.com"), token=None)
        assert response.status_code == 200
        assert asyncio.run(container.users.get_by_email("new@x.com")) is not None


class TestHealth:
    def test_webhook_health(self, client):
        body = client.get("/api/webhook/health").json()
        assert body["status"] == "ok"
        assert body["webhook"] == "active"

    def test_service_health(self, client):
        assert client.get("/api/health/").json()["status"] == "healthy"

    def test_readiness(self, client):
        response = client.get("/api/health/ready")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"
