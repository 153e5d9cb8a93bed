"""
Tests for the public endpoints: POST /messages and GET /replies.

Tests cover:
- Valid submissions and their initial state
- Validation errors (422)
- Store failures (503)
- Public feed filtering, ordering, bounds and field exposure
"""

from unittest.mock import patch

import pytest

from inbox.errors import StoreError


def submit(client, content: str) -> dict:
    """Helper to submit a message and return the acknowledgement."""
    response = client.post("/messages", json={"content": content})
    assert response.status_code == 201
    return response.json()


class TestSubmit:
    """Test anonymous submission."""

    def test_submit_success(self, client, auth_headers):
        ack = submit(client, "Hello")

        assert isinstance(ack["id"], int)
        assert ack["created_at"].endswith("Z")

        data = client.get("/admin/messages", headers=auth_headers).json()["data"]
        assert len(data) == 1
        assert data[0]["content"] == "Hello"
        assert data[0]["is_read"] is False
        assert data[0]["reply"] is None

    def test_no_authentication_needed(self, client):
        response = client.post("/messages", json={"content": "anonymous"})
        assert response.status_code == 201

    def test_response_includes_request_id_header(self, client):
        response = client.post("/messages", json={"content": "Hello"})
        assert "x-request-id" in response.headers

    def test_duplicate_content_not_merged(self, client, auth_headers):
        first = submit(client, "same")
        second = submit(client, "same")

        assert first["id"] != second["id"]
        data = client.get("/admin/messages", headers=auth_headers).json()["data"]
        assert len(data) == 2

    def test_content_trimmed(self, client, auth_headers):
        submit(client, "   padded   ")

        data = client.get("/admin/messages", headers=auth_headers).json()["data"]
        assert data[0]["content"] == "padded"

    @pytest.mark.parametrize("content", ["", "    "])
    def test_empty_content_rejected(self, client, content):
        response = client.post("/messages", json={"content": content})
        assert response.status_code == 422

    def test_500_chars_accepted(self, client):
        submit(client, "x" * 500)

    def test_501_chars_rejected(self, client):
        response = client.post("/messages", json={"content": "x" * 501})
        assert response.status_code == 422

    def test_missing_content_rejected(self, client):
        response = client.post("/messages", json={})
        assert response.status_code == 422

    def test_extra_fields_rejected(self, client):
        response = client.post("/messages", json={"content": "Hello", "is_read": True})
        assert response.status_code == 422

    def test_client_cannot_set_reply(self, client):
        response = client.post("/messages", json={"content": "Hello", "reply": "self-answer"})
        assert response.status_code == 422

    def test_store_failure(self, client):
        with patch("inbox.services.storage.insert_message", side_effect=StoreError()):
            response = client.post("/messages", json={"content": "Hello"})

        assert response.status_code == 503
        assert response.json()["error"] == "STORE_ERROR"


class TestReplyFeed:
    """Test the public reply feed."""

    def test_empty(self, client):
        response = client.get("/replies")

        assert response.status_code == 200
        assert response.json() == {"data": []}

    def test_only_answered_messages(self, client, auth_headers):
        answered = submit(client, "question")
        submit(client, "ignored")
        client.put(
            f"/admin/messages/{answered['id']}/reply",
            json={"reply": "answer"},
            headers=auth_headers,
        )

        data = client.get("/replies").json()["data"]
        assert data == [
            {"content": "question", "reply": "answer", "created_at": answered["created_at"]}
        ]

    def test_hides_internal_fields(self, client, auth_headers):
        ack = submit(client, "question")
        client.put(f"/admin/messages/{ack['id']}/reply", json={"reply": "answer"}, headers=auth_headers)

        item = client.get("/replies").json()["data"][0]
        assert set(item) == {"content", "reply", "created_at"}

    def test_newest_first_and_bounded(self, client, auth_headers, clock):
        for i in range(4):
            ack = submit(client, f"question {i}")
            client.put(f"/admin/messages/{ack['id']}/reply", json={"reply": f"answer {i}"}, headers=auth_headers)

        data = client.get("/replies", params={"limit": 2}).json()["data"]
        assert [item["content"] for item in data] == ["question 3", "question 2"]

    def test_limit_bounds(self, client):
        assert client.get("/replies", params={"limit": 0}).status_code == 422
        assert client.get("/replies", params={"limit": 101}).status_code == 422
        assert client.get("/replies", params={"limit": 100}).status_code == 200

    def test_deleted_message_leaves_feed(self, client, auth_headers):
        ack = submit(client, "question")
        client.put(f"/admin/messages/{ack['id']}/reply", json={"reply": "answer"}, headers=auth_headers)
        client.delete(f"/admin/messages/{ack['id']}", headers=auth_headers)

        assert client.get("/replies").json()["data"] == []
