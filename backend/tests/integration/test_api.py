"""
Integration Tests: HTTP API

Drives the FastAPI app through TestClient with an in-memory store.

Test cases:
- Health check
- Full claim/confirm flow over HTTP
- Error codes mapped to HTTP statuses
- Caller identity taken from the configured header
"""

from fastapi.testclient import TestClient

from support import MEMORY_DB, RecordingNotifier
from wagerbook.api import create_app
from wagerbook.config import Settings
from wagerbook.store import SqlAlchemyEntityStore


def _client(tmp_path, notifier=None) -> TestClient:
    settings = Settings(data_dir=tmp_path, _env_file=None)
    app = create_app(
        settings,
        store=SqlAlchemyEntityStore.from_config(MEMORY_DB),
        notifier=notifier or RecordingNotifier(),
    )
    return TestClient(app)


def _as(identity: str) -> dict[str, str]:
    return {"X-User-Id": identity}


def test_health(tmp_path) -> None:
    with _client(tmp_path) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "connected"


def test_claim_and_confirm_over_http(tmp_path) -> None:
    notifier = RecordingNotifier()
    with _client(tmp_path, notifier) as client:
        created = client.post(
            "/api/wagers",
            json={"description": "Over 2.5 goals", "stake": "5.00", "responder_ids": ["bob"]},
            headers=_as("alice"),
        )
        assert created.status_code == 201
        body = created.json()
        assert body["ok"] is True
        wager_id = body["value"]["wager_id"]
        [bob_pid] = body["value"]["participant_ids"]

        accepted = client.post(
            f"/api/participants/{bob_pid}/respond", json={"accept": True}, headers=_as("bob")
        )
        assert accepted.json()["value"] == {"wager_status": "active", "participant_status": "active"}

        claimed = client.post(
            f"/api/participants/{bob_pid}/declare", json={"outcome": "won"}, headers=_as("bob")
        )
        assert claimed.json()["value"] == {"requires_confirmation": True, "wager_status": "active"}

        self_confirm = client.post(f"/api/participants/{bob_pid}/confirm", headers=_as("bob"))
        assert self_confirm.status_code == 403
        assert self_confirm.json()["error"]["code"] == "authorization_error"

        confirmed = client.post(f"/api/participants/{bob_pid}/confirm", headers=_as("alice"))
        assert confirmed.status_code == 200
        assert confirmed.json()["value"] == {"wager_status": "completed", "final_outcome": "lost"}

        detail = client.get(f"/api/wagers/{wager_id}", headers=_as("bob")).json()["value"]
        assert detail["status"] == "completed"
        assert {p["responder_id"]: p["status"] for p in detail["participants"]} == {
            "alice": "lost",
            "bob": "won",
        }

        listed = client.get("/api/wagers", params={"status": "completed"}, headers=_as("alice"))
        assert [w["id"] for w in listed.json()["value"]] == [wager_id]

    types = [e.type.value for e in notifier.events]
    assert types[-1] == "outcome_confirmed"


def test_error_status_codes(tmp_path) -> None:
    with _client(tmp_path) as client:
        anonymous = client.post(
            "/api/wagers",
            json={"description": "x", "stake": "1", "responder_ids": ["bob"]},
        )
        assert anonymous.status_code == 403

        invalid = client.post(
            "/api/wagers",
            json={"description": "x", "stake": "0", "responder_ids": ["bob"]},
            headers=_as("alice"),
        )
        assert invalid.status_code == 422
        assert invalid.json()["error"]["code"] == "validation_error"

        missing = client.get(
            "/api/wagers/00000000-0000-0000-0000-000000000000", headers=_as("alice")
        )
        assert missing.status_code == 404

        created = client.post(
            "/api/wagers",
            json={"description": "Coin flip", "stake": "1", "responder_ids": ["bob"]},
            headers=_as("alice"),
        ).json()["value"]
        pid = created["participant_ids"][0]

        not_active = client.post(
            f"/api/participants/{pid}/declare", json={"outcome": "lost"}, headers=_as("bob")
        )
        assert not_active.status_code == 409
        assert not_active.json()["error"]["code"] == "invalid_transition"


def test_edit_cancel_and_delete_over_http(tmp_path) -> None:
    with _client(tmp_path) as client:
        wager_id = client.post(
            "/api/wagers",
            json={"description": "Coin flip", "stake": "1", "responder_ids": ["bob"]},
            headers=_as("alice"),
        ).json()["value"]["wager_id"]

        edited = client.patch(
            f"/api/wagers/{wager_id}", json={"stake": "2.50"}, headers=_as("alice")
        )
        assert edited.status_code == 200
        detail = client.get(f"/api/wagers/{wager_id}", headers=_as("alice")).json()["value"]
        assert detail["stake"] == "2.50"
        assert detail["description"] == "Coin flip"

        forbidden = client.post(f"/api/wagers/{wager_id}/cancel", headers=_as("bob"))
        assert forbidden.status_code == 403

        deleted = client.delete(f"/api/wagers/{wager_id}", headers=_as("alice"))
        assert deleted.json()["value"]["deleted"] is True

        second = client.post(
            "/api/wagers",
            json={"description": "Coin flip", "stake": "1", "responder_ids": ["bob"]},
            headers=_as("alice"),
        ).json()["value"]["wager_id"]
        cancelled = client.post(f"/api/wagers/{second}/cancel", headers=_as("alice"))
        assert cancelled.json()["value"] == {"wager_status": "cancelled"}

        activity = client.get("/api/activity", headers=_as("bob")).json()["value"]
        assert [a["wager_status"] for a in activity] == ["cancelled"]
