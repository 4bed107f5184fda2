from deadswitch.utils.tokens import join_recipients, reminder_token

OWNER = {"X-User-Email": "owner@example.com"}
PAYLOAD = {
    "recipients": ["alice@example.com", " bob@example.com", "alice@example.com"],
    "subject": "In case of emergency",
    "content": "<p>The keys are under the mat.</p>",
    "interval_amount": 3,
    "interval_unit": "days",
}


def _scheduler():
    from deadswitch.main import app
    return app.state.scheduler


def _signed_in(client, headers=OWNER):
    assert client.post("/user", headers=headers).status_code == 204


def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_identity_is_required(client):
    assert client.post("/user").status_code == 401
    assert client.get("/messages", headers={"X-User-Email": "  "}).status_code == 401


def test_unregistered_user_is_rejected(client):
    assert client.get("/messages", headers={"X-User-Email": "ghost@example.com"}).status_code == 401


def test_create_and_read_message(client):
    _signed_in(client)

    resp = client.post("/messages", json=PAYLOAD, headers=OWNER)
    assert resp.status_code == 201
    body = resp.json()
    assert body["recipients"] == ["alice@example.com", "bob@example.com"]
    assert body["active"] is True
    assert body["interval_unit"] == "days"
    assert body["last_check_in_ago"] == "none"

    listed = client.get("/messages", headers=OWNER).json()
    assert [m["id"] for m in listed] == [body["id"]]
    assert client.get(f"/messages/{body['id']}", headers=OWNER).json()["subject"] == PAYLOAD["subject"]

    scheduler = _scheduler()
    assert len(scheduler.registry) == 1


def test_duplicate_recipients_conflict(client):
    _signed_in(client)
    assert client.post("/messages", json=PAYLOAD, headers=OWNER).status_code == 201
    resp = client.post("/messages", json=PAYLOAD, headers=OWNER)
    assert resp.status_code == 409


def test_validation_errors(client):
    _signed_in(client)
    assert client.post("/messages", json={**PAYLOAD, "interval_amount": 0}, headers=OWNER).status_code == 422
    assert client.post("/messages", json={**PAYLOAD, "interval_unit": "weeks"}, headers=OWNER).status_code == 422
    assert client.post("/messages", json={**PAYLOAD, "recipients": [" "]}, headers=OWNER).status_code == 422


def test_other_users_message_is_not_found(client):
    _signed_in(client)
    created = client.post("/messages", json=PAYLOAD, headers=OWNER).json()
    intruder = {"X-User-Email": "intruder@example.com"}
    _signed_in(client, intruder)

    assert client.get(f"/messages/{created['id']}", headers=intruder).status_code == 404
    assert client.delete(f"/messages/{created['id']}", headers=intruder).status_code == 404
    assert client.get("/messages/9999", headers=OWNER).status_code == 404


def test_update_toggles_active(client):
    _signed_in(client)
    created = client.post("/messages", json=PAYLOAD, headers=OWNER).json()
    scheduler = _scheduler()

    resp = client.put(f"/messages/{created['id']}", json={"active": False}, headers=OWNER)
    assert resp.status_code == 200
    assert resp.json()["active"] is False
    assert resp.json()["disabled_at"] is not None
    assert len(scheduler.registry) == 0

    resp = client.put(
        f"/messages/{created['id']}",
        json={"active": True, "interval_amount": 12, "interval_unit": "hours"},
        headers=OWNER,
    )
    assert resp.json()["active"] is True
    assert resp.json()["interval_amount"] == 12
    assert len(scheduler.registry) == 1


def test_confirmation(client):
    _signed_in(client)
    client.post("/messages", json=PAYLOAD, headers=OWNER)
    token = reminder_token(join_recipients(PAYLOAD["recipients"]))

    resp = client.put(f"/confirmation/{token}")
    assert resp.status_code == 200
    assert resp.json()["next_check_in"].endswith("UTC")

    assert client.put("/confirmation/6ba7b811-9dad-11d1-80b4-00c04fd430c8").status_code == 204
    assert client.put("/confirmation/garbage").status_code == 204


def test_delete_message(client):
    _signed_in(client)
    created = client.post("/messages", json=PAYLOAD, headers=OWNER).json()

    assert client.delete(f"/messages/{created['id']}", headers=OWNER).status_code == 204
    assert client.get(f"/messages/{created['id']}", headers=OWNER).status_code == 404
    assert len(_scheduler().registry) == 0
