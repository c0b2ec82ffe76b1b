"""
API tests.

The app runs against a fresh in-memory store per test through FastAPI
dependency overrides; nothing touches Snowflake.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_authorizer, get_record_store
from src.config.settings import Settings, get_settings
from src.core.tracking.auth import AllowListAuthorizer
from src.core.tracking.dates import format_day_key
from src.core.tracking.store import RecordStoreError
from src.infrastructure.memory.store import InMemoryRecordStore, InMemoryWriteBatch
from src.main import app

API_KEY = "test-key"
COACH = {"X-API-Key": API_KEY, "X-User-Email": "Coach@Example.com"}
CLIENT = {"X-API-Key": API_KEY, "X-User-Email": "ana@example.com"}


@pytest.fixture
def store() -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.set("clients/ana", {"name": "Ana", "email": "ana@example.com", "role": "client"})
    store.set("clients/bo", {"name": "Bo", "email": "bo@example.com", "role": "client"})
    return store


@pytest.fixture
def client(store):
    app.dependency_overrides[get_settings] = lambda: Settings(
        api_keys=API_KEY,
        coach_emails="coach@example.com",
        snowflake_mock_mode=True,
    )
    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_authorizer] = lambda: AllowListAuthorizer(["coach@example.com"])
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class TestAuthentication:

    def test_missing_api_key(self, client):
        response = client.get("/api/v1/clients/ana/activity")
        assert response.status_code == 403

    def test_wrong_api_key(self, client):
        response = client.get("/api/v1/clients/ana/activity", headers={"X-API-Key": "nope"})
        assert response.status_code == 403

    def test_coach_routes_reject_clients(self, client):
        response = client.get("/api/v1/clients", headers=CLIENT)
        assert response.status_code == 403

    def test_coach_routes_reject_anonymous(self, client):
        response = client.get("/api/v1/clients", headers={"X-API-Key": API_KEY})
        assert response.status_code == 403


class TestClientAccess:
    """Clients reach only their own records; coaches reach everyone's."""

    @pytest.fixture
    def bo_record(self, store):
        store.set("clients/bo/records/rm_pr", {
            "rms": [{"id": "b1", "exercise": "Back Squat", "weight": "120kg"}],
            "prs": [],
        })

    def test_client_cannot_change_another_clients_records(self, client, store, bo_record):
        """
        Given Bo has a saved squat record
        When Ana tries to edit it, delete it or send Bo's records to the coach
        Then every request is refused and Bo's document is unchanged
        """
        responses = [
            client.put(
                "/api/v1/clients/bo/records/RM/b1",
                json={"exercise": "Back Squat", "value": "1kg"},
                headers=CLIENT,
            ),
            client.delete("/api/v1/clients/bo/records/RM/b1", headers=CLIENT),
            client.post("/api/v1/clients/bo/records/send-to-coach", headers=CLIENT),
        ]

        assert [r.status_code for r in responses] == [403, 403, 403]
        assert store.get("clients/bo/records/rm_pr") == {
            "rms": [{"id": "b1", "exercise": "Back Squat", "weight": "120kg"}],
            "prs": [],
        }

    def test_client_cannot_read_another_clients_calendar(self, client):
        response = client.get("/api/v1/clients/bo/activity", headers=CLIENT)
        assert response.status_code == 403

    def test_request_without_identity_is_refused(self, client):
        response = client.get("/api/v1/clients/ana/records", headers={"X-API-Key": API_KEY})
        assert response.status_code == 403

    def test_unknown_client_is_refused(self, client):
        response = client.get("/api/v1/clients/ghost/records", headers=CLIENT)
        assert response.status_code == 403

    def test_email_match_ignores_case(self, client):
        headers = {"X-API-Key": API_KEY, "X-User-Email": "ANA@Example.com"}
        response = client.get("/api/v1/clients/ana/records", headers=headers)
        assert response.status_code == 200

    def test_coach_can_change_any_clients_records(self, client, store, bo_record):
        response = client.put(
            "/api/v1/clients/bo/records/RM/b1",
            json={"exercise": "Back Squat", "value": "125kg"},
            headers=COACH,
        )

        assert response.status_code == 200
        assert store.get("clients/bo/records/rm_pr")["rms"][0]["weight"] == "125kg"


# ---------------------------------------------------------------------------
# Clients and payments
# ---------------------------------------------------------------------------

class TestSubscriptionEndpoints:

    def test_status_follows_payments_and_end_date(self, client):
        """
        Given a client with no payments
        When the coach adds a payment, expires the subscription and deletes the payment
        Then the status goes active -> inactive -> pending
        """
        response = client.post(
            "/api/v1/clients/ana/payments",
            json={"payment_date": "2024-06-01", "method": "cash", "amount": 50},
            headers=COACH,
        )
        assert response.status_code == 201
        assert response.json()["status"] == "active"

        payments = client.get("/api/v1/clients/ana/payments", headers=COACH).json()
        assert len(payments) == 1
        assert payments[0]["date"] == "2024-06-01"

        response = client.put(
            "/api/v1/clients/ana/subscription",
            json={"end_date": "2000-01-31"},
            headers=COACH,
        )
        assert response.json()["status"] == "inactive"

        inactive = client.get("/api/v1/clients?status=inactive", headers=COACH).json()
        assert [c["id"] for c in inactive["clients"]] == ["ana"]

        response = client.delete(f"/api/v1/clients/ana/payments/{payments[0]['id']}", headers=COACH)
        assert response.json()["status"] == "pending"

    def test_default_listing_hides_inactive(self, client):
        client.put(
            "/api/v1/clients/bo/subscription",
            json={
                "end_date": "2000-01-31",
                "payment": {"payment_date": "2000-01-01", "method": "transfer"},
            },
            headers=COACH,
        )

        listing = client.get("/api/v1/clients", headers=COACH).json()

        assert [c["id"] for c in listing["clients"]] == ["ana"]
        assert listing["total"] == 1

    def test_exemption(self, client):
        response = client.put("/api/v1/clients/ana/exemption", json={"exempt": True}, headers=COACH)
        assert response.json()["status"] == "active"

    def test_unknown_client(self, client):
        response = client.post("/api/v1/clients/ghost/status/recalculate", headers=COACH)
        assert response.status_code == 404

    def test_unknown_payment(self, client):
        response = client.delete("/api/v1/clients/ana/payments/nope", headers=COACH)
        assert response.status_code == 404

    def test_negative_amount_is_rejected(self, client):
        response = client.post(
            "/api/v1/clients/ana/payments",
            json={"payment_date": "2024-06-01", "method": "cash", "amount": -1},
            headers=COACH,
        )
        assert response.status_code == 422

    def test_failed_write_is_503(self, client, store):
        class FailingBatch(InMemoryWriteBatch):
            def commit(self):
                raise RecordStoreError("down")

        store.batch = lambda: FailingBatch(store)

        response = client.post(
            "/api/v1/clients/ana/payments",
            json={"payment_date": "2024-06-01", "method": "cash"},
            headers=COACH,
        )

        assert response.status_code == 503
        assert store.list_collection("clients/ana/payments") == []


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

class TestActivityEndpoints:

    def test_feedback_and_load_effort_show_on_calendar(self, client, store):
        today = format_day_key(datetime.now())

        response = client.post(
            "/api/v1/clients/ana/feedback",
            json={"rpe": 7, "mood": "good"},
            headers=CLIENT,
        )
        assert response.status_code == 201

        response = client.post(
            "/api/v1/clients/ana/load-effort",
            json={"implements": [{"implement": "Kettlebell", "load": "16kg"}]},
            headers=CLIENT,
        )
        assert response.status_code == 201
        assert response.json()["day_key"] == today

        days = client.get("/api/v1/clients/ana/activity", headers=CLIENT).json()["days"]
        assert len(days) == 1
        assert days[0]["day_key"] == today
        assert days[0]["category"] == "multiple"
        assert days[0]["has_workout"] is True

        detail = client.get(f"/api/v1/clients/ana/activity/{today}/load-effort", headers=CLIENT)
        assert detail.json()["implements"] == [{"implement": "Kettlebell", "load": "16kg"}]

        stored = store.get("clients/ana/dailyRecords/load_effort")["records"][0]
        assert stored["implementos"] == [{"implement": "Kettlebell", "load": "16kg"}]

    def test_older_load_effort_entries_are_readable(self, client, store):
        store.set("clients/ana/dailyRecords/load_effort", {"records": [{
            "id": "old",
            "date": int(datetime(2024, 3, 4).timestamp() * 1000),
            "implements": [{"implement": "Sled", "load": "40kg"}],
        }]})

        detail = client.get("/api/v1/clients/ana/activity/2024-03-04/load-effort", headers=CLIENT)

        assert detail.json()["implements"] == [{"implement": "Sled", "load": "40kg"}]

    def test_second_feedback_same_day_conflicts(self, client):
        body = {"rpe": 7, "mood": "good"}
        client.post("/api/v1/clients/ana/feedback", json=body, headers=CLIENT)

        response = client.post("/api/v1/clients/ana/feedback", json=body, headers=CLIENT)

        assert response.status_code == 409

    def test_rpe_out_of_range(self, client):
        response = client.post(
            "/api/v1/clients/ana/feedback",
            json={"rpe": 11, "mood": "good"},
            headers=CLIENT,
        )
        assert response.status_code == 422

    def test_complete_workout(self, client):
        response = client.post("/api/v1/clients/ana/workouts/2024-3-7/complete", headers=COACH)

        assert response.json()["day_key"] == "2024-03-07"
        days = client.get("/api/v1/clients/ana/activity", headers=COACH).json()["days"]
        assert days == [{
            "day_key": "2024-03-07",
            "has_workout": True,
            "has_feedback": False,
            "has_load_effort": False,
            "category": "workout",
        }]

    def test_bad_day_key(self, client):
        response = client.post("/api/v1/clients/ana/workouts/yesterday/complete", headers=COACH)
        assert response.status_code == 400

    def test_no_load_effort_for_day(self, client):
        response = client.get("/api/v1/clients/ana/activity/2024-01-01/load-effort", headers=CLIENT)
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestRecordEndpoints:

    @pytest.fixture
    def bo_squat(self, store):
        store.set("clients/bo/records/rm_pr", {
            "rms": [{"id": "b1", "exercise": "Back Squat", "weight": "120kg"}],
            "prs": [],
        })

    def test_client_must_confirm_when_peer_is_better(self, client, bo_squat):
        body = {"exercise": "back squat", "value": "100kg"}

        response = client.post("/api/v1/clients/ana/records/RM", json=body, headers=CLIENT)

        result = response.json()
        assert response.status_code == 200
        assert result["saved"] is False
        assert result["needs_confirmation"] is True
        assert result["comparisons"][0]["client_name"] == "Bo"

        response = client.post(
            "/api/v1/clients/ana/records/RM?confirm=true", json=body, headers=CLIENT,
        )
        assert response.json()["saved"] is True

        records = client.get("/api/v1/clients/ana/records", headers=CLIENT).json()
        assert [r["value"] for r in records["rms"]] == ["100kg"]

    def test_coach_entries_skip_comparison(self, client, bo_squat):
        response = client.post(
            "/api/v1/clients/ana/records/RM",
            json={"exercise": "back squat", "value": "100kg"},
            headers=COACH,
        )

        result = response.json()
        assert result["saved"] is True
        assert result["comparisons"] == []

    def test_compare_only(self, client, bo_squat, store):
        response = client.post(
            "/api/v1/clients/ana/records/RM/compare",
            json={"exercise": "Back Squat", "value": "120"},
            headers=CLIENT,
        )

        assert [c["client_id"] for c in response.json()["comparisons"]] == ["bo"]
        assert store.get("clients/ana/records/rm_pr") is None

    def test_edit_and_delete(self, client):
        saved = client.post(
            "/api/v1/clients/ana/records/PR",
            json={"exercise": "Row 2k", "value": "7:50"},
            headers=CLIENT,
        ).json()["record"]

        response = client.put(
            f"/api/v1/clients/ana/records/PR/{saved['id']}",
            json={"exercise": "Row 2k", "value": "7:45"},
            headers=CLIENT,
        )
        assert response.json()["value"] == "7:45"

        response = client.delete(f"/api/v1/clients/ana/records/PR/{saved['id']}", headers=CLIENT)
        assert response.status_code == 204

        response = client.delete(f"/api/v1/clients/ana/records/PR/{saved['id']}", headers=CLIENT)
        assert response.status_code == 404

    def test_send_to_coach(self, client, store):
        response = client.post("/api/v1/clients/ana/records/send-to-coach", headers=CLIENT)

        assert response.status_code == 204
        assert store.get("clients/ana/records/rm_pr")["sentToCoach"] is True

    def test_unknown_kind(self, client):
        response = client.post(
            "/api/v1/clients/ana/records/XL",
            json={"exercise": "Squat", "value": "1"},
            headers=CLIENT,
        )
        assert response.status_code == 422

    def test_blank_exercise_is_rejected(self, client):
        response = client.post(
            "/api/v1/clients/ana/records/RM",
            json={"exercise": "   ", "value": "100kg"},
            headers=CLIENT,
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:

    def test_liveness(self, client):
        response = client.get("/health")
        assert response.json()["status"] == "ok"

    def test_readiness_in_mock_mode(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
