"""HTTP tests for the ingestion and application endpoints."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from job_tracker.models import Application, Email, StatusEvent

INGEST_URL = "/events/email-ingested"
OTHER_USER = {"x-user-email": "someone-else@example.com"}


def _email(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "provider": "gmail",
        "messageId": "m1",
        "sentAt": "2024-01-01T00:00:00Z",
        "subject": "App received",
        "from": {"name": "Airbnb", "email": "hr@airbnb.com"},
        "classification": "applied",
    }
    body.update(overrides)
    return body


def _ingest(client: TestClient, headers: dict[str, str], **overrides: Any) -> dict[str, Any]:
    response = client.post(INGEST_URL, json=_email(**overrides), headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestIdentity:
    def test_missing_header_is_401(self, client: TestClient):
        """Requests without the identity header are rejected."""
        response = client.get("/applications")

        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "Missing x-user-email"}

    def test_blank_header_is_401(self, client: TestClient):
        """An empty identity header counts as missing."""
        response = client.post(INGEST_URL, json=_email(), headers={"x-user-email": ""})

        assert response.status_code == 401

    def test_health_needs_no_identity(self, client: TestClient):
        """The health check is open."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_first_request_creates_user(self, client: TestClient, auth_headers: dict):
        """An unseen identity gets a fresh, empty account."""
        response = client.get("/applications", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == []


class TestIngestionEndpoint:
    def test_first_email_creates_application(self, client: TestClient, auth_headers: dict):
        """The first email opens an APPLIED application."""
        data = _ingest(client, auth_headers)

        assert data["ok"] is True
        assert data["statusChanged"] is True
        assert data["newStatus"] == "APPLIED"
        assert isinstance(data["applicationId"], int)
        assert isinstance(data["emailId"], int)

        apps = client.get("/applications", headers=auth_headers).json()
        assert len(apps) == 1
        assert apps[0]["company"] == "airbnb"
        assert apps[0]["roleTitle"] == "Unknown"
        assert apps[0]["status"] == "APPLIED"

    def test_reply_moves_application_to_interviewing(self, client: TestClient, auth_headers: dict):
        """A reply moves the application and logs the transition."""
        first = _ingest(client, auth_headers)

        second = _ingest(
            client,
            auth_headers,
            messageId="m2",
            inReplyTo="m1",
            sentAt="2024-01-08T15:30:00Z",
            subject="Let's talk",
            classification="interviewing",
        )

        assert second["applicationId"] == first["applicationId"]
        assert second["statusChanged"] is True
        assert second["newStatus"] == "INTERVIEWING"

        detail = client.get(f"/applications/{first['applicationId']}", headers=auth_headers).json()
        assert detail["status"] == "INTERVIEWING"
        latest = detail["statusEvents"][0]
        assert latest["fromStatus"] == "APPLIED"
        assert latest["toStatus"] == "INTERVIEWING"
        assert latest["reason"] == "auto"
        assert [e["messageId"] for e in detail["emails"]] == ["m2", "m1"]
        assert detail["lastActivityAt"].startswith("2024-01-08T15:30:00")

    def test_repeat_ingestion_is_idempotent(
        self, client: TestClient, auth_headers: dict, db_session: Session
    ):
        """Posting the same message twice stores it once."""
        first = _ingest(client, auth_headers)
        second = _ingest(client, auth_headers)

        assert second["emailId"] == first["emailId"]
        assert second["applicationId"] == first["applicationId"]
        assert second["statusChanged"] is False
        assert db_session.query(Email).count() == 1
        assert db_session.query(StatusEvent).count() == 1

    def test_provider_ids_alone_are_enough(self, client: TestClient, auth_headers: dict):
        """Provider ids can stand in for the message id."""
        body = _email(messageId=None, providerMessageId="18c2f0a")
        response = client.post(INGEST_URL, json=body, headers=auth_headers)

        assert response.status_code == 200

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"messageId": None}, "Missing messageId and providerMessageId"),
            ({"messageId": "", "providerMessageId": "p1", "provider": None}, "Missing messageId and providerMessageId"),
            ({"provider": None}, "Missing provider/sentAt/subject"),
            ({"sentAt": None}, "Missing provider/sentAt/subject"),
            ({"subject": ""}, "Missing provider/sentAt/subject"),
        ],
    )
    def test_missing_required_fields_is_400(
        self, client: TestClient, auth_headers: dict, overrides: dict, message: str
    ):
        """Each missing required field gets its own message."""
        response = client.post(INGEST_URL, json=_email(**overrides), headers=auth_headers)

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": message}

    def test_bad_timestamp_is_400(self, client: TestClient, auth_headers: dict):
        """An unparseable sentAt is a bad request."""
        response = client.post(INGEST_URL, json=_email(sentAt="yesterday-ish"), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["ok"] is False

    def test_unexpected_failure_is_500(
        self, client: TestClient, auth_headers: dict, db_session: Session, monkeypatch
    ):
        """Unexpected errors roll back and return a generic 500."""
        def _boom(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr("job_tracker.api.events.ingest_email", _boom)

        response = client.post(INGEST_URL, json=_email(), headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "Server error"}
        assert db_session.query(Application).count() == 0

    def test_users_do_not_share_threads(self, client: TestClient, auth_headers: dict):
        """A reply header never reaches another user's application."""
        mine = _ingest(client, auth_headers)
        theirs = _ingest(
            client,
            OTHER_USER,
            messageId="m2",
            inReplyTo="m1",
            classification="rejected",
        )

        assert theirs["applicationId"] != mine["applicationId"]
        assert theirs["newStatus"] == "REJECTED"
        mine_detail = client.get(f"/applications/{mine['applicationId']}", headers=auth_headers).json()
        assert mine_detail["status"] == "APPLIED"


class TestApplicationEndpoints:
    def test_list_is_scoped_to_caller(self, client: TestClient, auth_headers: dict):
        """The list only shows the caller's applications."""
        _ingest(client, auth_headers)
        _ingest(client, OTHER_USER, **{"from": {"email": "jobs@stripe.com"}})

        mine = client.get("/applications", headers=auth_headers).json()

        assert [a["company"] for a in mine] == ["airbnb"]

    def test_list_filters_by_status(self, client: TestClient, auth_headers: dict):
        """The status query parameter narrows the list."""
        _ingest(client, auth_headers)
        _ingest(
            client,
            auth_headers,
            messageId="m2",
            classification="offer",
            **{"from": {"email": "jobs@stripe.com"}},
        )

        offers = client.get("/applications", params={"status": "OFFER"}, headers=auth_headers).json()

        assert [a["company"] for a in offers] == ["stripe"]

    def test_detail_of_unknown_application_is_404(self, client: TestClient, auth_headers: dict):
        """An unknown id is not found."""
        response = client.get("/applications/9999", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Not found"}

    def test_detail_with_non_numeric_id_is_404(self, client: TestClient, auth_headers: dict):
        """An id that is not a number cannot name an application."""
        response = client.get("/applications/abc", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Not found"}

    def test_timestamps_are_sent_as_utc(self, client: TestClient, auth_headers: dict):
        """Stored times come back with their UTC offset."""
        app_id = _ingest(client, auth_headers, sentAt="2024-01-08T17:30:00+02:00")["applicationId"]

        detail = client.get(f"/applications/{app_id}", headers=auth_headers).json()

        assert detail["lastActivityAt"] == "2024-01-08T15:30:00Z"
        assert detail["emails"][0]["sentAt"] == "2024-01-08T15:30:00Z"

    def test_detail_of_other_users_application_is_404(self, client: TestClient, auth_headers: dict):
        """Another user's application is not found."""
        theirs = _ingest(client, OTHER_USER)

        response = client.get(f"/applications/{theirs['applicationId']}", headers=auth_headers)

        assert response.status_code == 404

    def test_board_groups_by_status(self, client: TestClient, auth_headers: dict):
        """The board has one column per status in enum order."""
        _ingest(client, auth_headers)
        _ingest(
            client,
            auth_headers,
            messageId="m2",
            classification="rejected",
            **{"from": {"email": "jobs@stripe.com"}},
        )

        board = client.get("/applications/board", headers=auth_headers).json()

        assert [c["status"] for c in board["columns"]] == [
            "APPLIED",
            "INTERVIEWING",
            "REJECTED",
            "OFFER",
            "OTHER",
        ]
        counts = {c["status"]: c["count"] for c in board["columns"]}
        assert counts == {"APPLIED": 1, "INTERVIEWING": 0, "REJECTED": 1, "OFFER": 0, "OTHER": 0}
        assert board["total"] == 2


class TestStatusUpdate:
    def test_manual_move_records_event(self, client: TestClient, auth_headers: dict):
        """A manual move is logged with the manual reason."""
        app_id = _ingest(client, auth_headers)["applicationId"]

        response = client.patch(
            f"/applications/{app_id}/status", json={"status": "OFFER"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "OFFER"
        events = client.get(f"/applications/{app_id}", headers=auth_headers).json()["statusEvents"]
        assert len(events) == 2
        assert events[0]["fromStatus"] == "APPLIED"
        assert events[0]["toStatus"] == "OFFER"
        assert events[0]["reason"] == "manual"

    def test_move_to_current_status_adds_no_event(
        self, client: TestClient, auth_headers: dict, db_session: Session
    ):
        """Moving to the current status writes no event."""
        app_id = _ingest(client, auth_headers)["applicationId"]

        response = client.patch(
            f"/applications/{app_id}/status", json={"status": "APPLIED"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "APPLIED"
        assert db_session.query(StatusEvent).count() == 1

    @pytest.mark.parametrize("body", [{"status": "applied"}, {"status": "GHOSTED"}, {}])
    def test_invalid_status_is_400(self, client: TestClient, auth_headers: dict, body: dict):
        """Unknown or lowercase statuses are rejected."""
        app_id = _ingest(client, auth_headers)["applicationId"]

        response = client.patch(f"/applications/{app_id}/status", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["ok"] is False

    def test_unknown_application_is_404(self, client: TestClient, auth_headers: dict):
        """Updating an unknown id is not found."""
        response = client.patch(
            "/applications/9999/status", json={"status": "OFFER"}, headers=auth_headers
        )

        assert response.status_code == 404

    def test_non_numeric_id_is_404(self, client: TestClient, auth_headers: dict):
        """A non-numeric id is treated as an unknown application."""
        response = client.patch(
            "/applications/abc/status", json={"status": "OFFER"}, headers=auth_headers
        )

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Not found"}

    def test_other_users_application_is_404(self, client: TestClient, auth_headers: dict):
        """Updating another user's application is not found."""
        theirs = _ingest(client, OTHER_USER)

        response = client.patch(
            f"/applications/{theirs['applicationId']}/status",
            json={"status": "OFFER"},
            headers=auth_headers,
        )

        assert response.status_code == 404
