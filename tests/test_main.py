"""Tests for the HTTP surface: webhook and health check."""

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.users.models import UserState


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "OK"


def test_webhook_rejects_wrong_token(client, fake_telegram):
    response = client.post("/webhook/not-the-token", json={"update_id": 1})
    assert response.status_code == 403
    assert fake_telegram.sent == []


def test_webhook_dispatches_update(client, container, fake_telegram):
    update = {
        "update_id": 10,
        "message": {
            "message_id": 1,
            "from": {"id": 42, "is_bot": False, "first_name": "Test"},
            "chat": {"id": 42, "type": "private"},
            "date": 1700000000,
            "text": "/start",
        },
    }

    response = client.post("/webhook/test-token", json=update)

    assert response.status_code == 200
    assert fake_telegram.sent[-1].chat_id == 42
    profile = client.portal.call(container.profile_service.get_profile, 42)
    assert profile.fsm_state == UserState.ONBOARDING_MEDICAL_CONFIRM


def test_webhook_acknowledges_malformed_update(client, fake_telegram):
    response = client.post("/webhook/test-token", json={"message": "not an update"})
    assert response.status_code == 200
    assert fake_telegram.sent == []
