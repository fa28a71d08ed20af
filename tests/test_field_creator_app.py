import pytest
import requests

from conftest import WEBHOOK, make_response
from field_creator_app import create_app


@pytest.fixture
def outcomes():
    return []


@pytest.fixture
def client(fake_session, outcomes, sleeps, record_sleep):
    app = create_app(delay=0.3, session_factory=lambda: fake_session(*outcomes), sleep=record_sleep)
    app.config["TESTING"] = True
    return app.test_client()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_creates_fields_and_returns_newest_first(client, outcomes, sleeps):
    outcomes.extend([make_response(200, {"result": 11}), make_response(200, {"result": 12})])
    resp = client.post("/fields", json={"webhook": WEBHOOK, "fieldName": "Name", "quantity": 2, "entity": "leads"})

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["status"] == "ok"
    assert body["created"] == 2
    assert body["failed"] == 0
    assert [log["outcome"] for log in body["logs"]] == ["success", "success"]
    assert '"UF_CRM_LEAD_NAME_002"' in body["logs"][0]["payload"]
    assert '"UF_CRM_LEAD_NAME_001"' in body["logs"][1]["payload"]
    assert sleeps == [0.3]


def test_partial_failure_reports_error_status(client, outcomes):
    outcomes.extend([requests.exceptions.ConnectionError("boom"), make_response(200, {"result": 1})])
    resp = client.post("/fields", json={"webhook": WEBHOOK, "fieldName": "Name", "quantity": 2})

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["status"] == "error"
    assert body["failed"] == 1
    assert body["logs"][1]["status"] == 0


def test_malformed_webhook_is_rejected(client):
    resp = client.post("/fields", json={"webhook": "not-a-url", "fieldName": "Name", "quantity": 3})
    body = resp.get_json()
    assert resp.status_code == 400
    assert "Formato de webhook" in body["error"]
    assert body["logs"] == []


def test_missing_fields_are_rejected(client):
    resp = client.post("/fields", json={})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Por favor, preencha o webhook e o nome do campo"


def test_bad_quantity_is_rejected(client):
    resp = client.post("/fields", json={"webhook": WEBHOOK, "fieldName": "Name", "quantity": "many"})
    assert resp.status_code == 400


def test_quantity_is_clamped(client, outcomes):
    outcomes.extend([make_response(200, {"result": i}) for i in range(100)])
    resp = client.post("/fields", json={"webhook": WEBHOOK, "fieldName": "N", "quantity": 500})
    assert len(resp.get_json()["logs"]) == 100


@pytest.mark.parametrize("body", [
    {"webhook": 5, "fieldName": "Name"},
    {"webhook": WEBHOOK, "fieldName": 7},
    {"webhook": WEBHOOK, "fieldName": "Name", "fieldType": "enumeration", "listOptions": ["A", "B"]},
    {"webhook": WEBHOOK, "fieldName": "Name", "entity": ["x"]},
    {"webhook": WEBHOOK, "fieldName": "Name", "fieldType": 3},
    {"webhook": WEBHOOK, "fieldName": "Name", "lang": {"pt": True}},
])
def test_wrongly_typed_fields_are_rejected(client, body):
    resp = client.post("/fields", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["error"].startswith("must be strings")
    assert resp.get_json()["logs"] == []


def test_non_object_body_is_rejected(client):
    resp = client.post("/fields", json=["not", "an", "object"])
    assert resp.status_code == 400


def test_session_is_closed_after_each_batch(fake_session, record_sleep):
    opened = []

    def factory():
        session = fake_session(make_response(200, {"result": 1}))
        opened.append(session)
        return session

    app = create_app(delay=0, session_factory=factory, sleep=record_sleep)
    client = app.test_client()
    client.post("/fields", json={"webhook": WEBHOOK, "fieldName": "Name"})
    client.post("/fields", json={"webhook": "not-a-url", "fieldName": "Name"})

    assert len(opened) == 2
    for session in opened:
        session.close.assert_called_once_with()
