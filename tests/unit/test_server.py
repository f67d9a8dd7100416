"""Tests for the webhook HTTP gate."""

from __future__ import annotations

import json
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from mailbox_janitor.core.errors import StorageError
from mailbox_janitor.core.store import PendingStore
from mailbox_janitor.server import (
    SIGNATURE_HEADER,
    compute_signature,
    create_app,
    verify_signature,
)
from mailbox_janitor.services.ingest import IngestService

SECRET = "test-secret"


def event_body(email: str, event_type: str = "user.deleted") -> bytes:
    payload = {
        "type": event_type,
        "timestamp": "2024-01-15T10:00:00Z",
        "data": {"email": email},
    }
    return json.dumps(payload).encode("utf-8")


def signed_post(client: TestClient, body: bytes, secret: str = SECRET):
    return client.post(
        "/userli",
        content=body,
        headers={SIGNATURE_HEADER: compute_signature(secret, body)},
    )


@pytest.fixture
def client(store: PendingStore) -> Iterator[TestClient]:
    app = create_app(SECRET, IngestService(store))
    with TestClient(app) as test_client:
        yield test_client


# =============================================================================
# Signatures
# =============================================================================


@pytest.mark.unit
class TestSignature:
    def test_roundtrip(self) -> None:
        body = b'{"type":"user.deleted"}'
        assert verify_signature(SECRET, body, compute_signature(SECRET, body))

    def test_wrong_secret(self) -> None:
        body = b"payload"
        assert not verify_signature(SECRET, body, compute_signature("other", body))

    def test_not_hex(self) -> None:
        assert not verify_signature(SECRET, b"payload", "not-a-signature")

    def test_empty_secret_rejected(self, store: PendingStore) -> None:
        with pytest.raises(ValueError):
            create_app("", IngestService(store))


# =============================================================================
# Routes
# =============================================================================


@pytest.mark.unit
class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.text == "OK"


@pytest.mark.unit
class TestUserliEndpoint:
    def test_missing_signature(self, client: TestClient, store: PendingStore) -> None:
        response = client.post("/userli", content=event_body("test@example.com"))

        assert response.status_code == 401
        assert len(store) == 0

    def test_invalid_signature(self, client: TestClient, store: PendingStore) -> None:
        body = event_body("test@example.com")
        response = client.post("/userli", content=body, headers={SIGNATURE_HEADER: "deadbeef"})

        assert response.status_code == 401
        assert len(store) == 0

    def test_signature_over_different_body(
        self, client: TestClient, store: PendingStore
    ) -> None:
        signature = compute_signature(SECRET, event_body("a@example.com"))
        response = client.post(
            "/userli",
            content=event_body("b@example.com"),
            headers={SIGNATURE_HEADER: signature},
        )
        assert response.status_code == 401
        assert len(store) == 0

    def test_invalid_json(self, client: TestClient) -> None:
        response = signed_post(client, b"{not json")
        assert response.status_code == 400

    def test_missing_type(self, client: TestClient) -> None:
        response = signed_post(client, b'{"data": {"email": "test@example.com"}}')
        assert response.status_code == 400

    def test_unknown_event_type(self, client: TestClient, store: PendingStore) -> None:
        response = signed_post(client, event_body("test@example.com", "user.created"))

        assert response.status_code == 400
        assert len(store) == 0

    def test_user_deleted_is_queued(self, client: TestClient, store: PendingStore) -> None:
        response = signed_post(client, event_body("test@example.com"))

        assert response.status_code == 200
        assert response.text == "OK"
        assert "test@example.com" in store

    def test_invalid_email_acknowledged_but_not_stored(
        self, client: TestClient, store: PendingStore
    ) -> None:
        response = signed_post(client, event_body("*@example.com"))

        assert response.status_code == 200
        assert len(store) == 0

    def test_duplicate_acknowledged(self, client: TestClient, store: PendingStore) -> None:
        body = event_body("test@example.com")
        assert signed_post(client, body).status_code == 200
        assert signed_post(client, body).status_code == 200
        assert len(store) == 1

    def test_storage_error_asks_for_retry(self) -> None:
        broken_store = MagicMock()
        broken_store.add.side_effect = StorageError("read-only file system")
        app = create_app(SECRET, IngestService(broken_store))

        with TestClient(app) as test_client:
            response = signed_post(test_client, event_body("test@example.com"))

        assert response.status_code == 503

    def test_get_not_allowed(self, client: TestClient) -> None:
        assert client.get("/userli").status_code == 405
