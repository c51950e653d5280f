"""
Pytest configuration shared by the unit and integration suites.

Required settings are provided through the environment before any
``voicenotes`` module is imported, since ``voicenotes.config`` builds its
settings object at import time.
"""

import base64
import json
import os

os.environ.setdefault("APP_SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("APP_SUPABASE_SERVICE_ROLE_KEY", "service-role-test-key")
os.environ.setdefault("APP_JWT_SECRET", "test-jwt-secret-with-enough-entropy-0123456789")
os.environ.setdefault("APP_OPENAI_API_KEY", "sk-test")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tests.fakes import PostmarkOutbox, build_test_container  # noqa: E402
from voicenotes.config import Settings  # noqa: E402
from voicenotes.core.services.email_service import compute_webhook_signature  # noqa: E402
from voicenotes.dependencies import reset_rate_limits  # noqa: E402
from voicenotes.main import create_app  # noqa: E402

WEBHOOK_TOKEN = "inbound-hook-secret"
PASSWORD = "correct-horse-42"


@pytest.fixture
def settings():
    return Settings(
        postmark_webhook_token=WEBHOOK_TOKEN,
        enable_rate_limiting=False,
        bcrypt_rounds=4,
    )


@pytest.fixture
def outbox():
    return PostmarkOutbox()


@pytest.fixture
def container(settings, outbox):
    return build_test_container(settings, outbox=outbox)


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


def register(client, email="demo@x.com", password=PASSWORD):
    """Register through the API and return the bearer headers."""
    response = client.post("/api/auth/register", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def inbound_payload(sender="demo@x.com", subject="Standup notes", attachments=None, text_body="See attached"):
    if attachments is None:
        attachments = [("memo.mp3", "audio/mpeg", b"ID3\x03\x00fake-mp3-bytes")]
    return {
        "From": sender,
        "FromFull": {"Email": sender, "Name": "Demo"},
        "Subject": subject,
        "TextBody": text_body,
        "Attachments": [
            {
                "Name": name,
                "ContentType": content_type,
                "Content": base64.b64encode(data).decode(),
                "ContentLength": len(data),
            }
            for name, content_type, data in attachments
        ],
    }


def post_inbound(client, payload, token=WEBHOOK_TOKEN):
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    if token is not None:
        headers["X-Postmark-Signature"] = compute_webhook_signature(body, token)
    return client.post("/api/webhook/inbound", content=body, headers=headers)
