import pytest
from fastapi.testclient import TestClient

from safeping.api import SIGNAL_PATH, create_app
from safeping.signaling import ExpirySweeper


def test_signaling_round_trip(client):
    response = client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "offer", "data": {"sdp": "X"}})
    assert response.status_code == 200
    assert response.json() == {"success": True}

    offer = client.get(SIGNAL_PATH, params={"sessionId": "abc", "type": "offer"})
    assert offer.status_code == 200
    assert offer.json() == {"data": {"sdp": "X"}}

    response = client.post(
        SIGNAL_PATH,
        json={"sessionId": "abc", "type": "ice-candidate", "data": {"candidate": "c1", "from": "initiator"}},
    )
    assert response.status_code == 200

    candidates = client.get(SIGNAL_PATH, params={"sessionId": "abc", "type": "ice-candidates"}).json()["data"]
    assert len(candidates) == 1
    assert candidates[0]["candidate"] == "c1"
    assert candidates[0]["from"] == "initiator"
    assert isinstance(candidates[0]["timestamp"], int)

    missing = client.get(SIGNAL_PATH, params={"sessionId": "missing", "type": "all"})
    assert missing.status_code == 404
    assert missing.json() == {"error": "Session not found"}


def test_answer_absent_until_published(client):
    client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "offer", "data": {"sdp": "X"}})
    answer = client.get(SIGNAL_PATH, params={"sessionId": "abc", "type": "answer"})
    assert answer.status_code == 200
    assert answer.json() == {"data": None}


def test_fetch_all_shape(client):
    client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "answer", "data": {"sdp": "A"}})
    body = client.get(SIGNAL_PATH, params={"sessionId": "abc", "type": "all"}).json()
    assert body == {"offer": None, "answer": {"sdp": "A"}, "iceCandidates": []}


@pytest.mark.parametrize(
    "body",
    [
        {"type": "offer", "data": {"sdp": "X"}},
        {"sessionId": "abc", "data": {"sdp": "X"}},
        {"sessionId": "abc", "type": "offer"},
        {"sessionId": "abc", "type": "hangup", "data": {"sdp": "X"}},
        {"sessionId": 42, "type": "offer", "data": {"sdp": "X"}},
        {"sessionId": "abc", "type": "offer", "data": False},
        {"sessionId": "abc", "type": "answer", "data": 0},
        {"sessionId": "abc", "type": "offer", "data": ""},
    ],
)
def test_publish_validation_errors(client, store, body):
    response = client.post(SIGNAL_PATH, json=body)
    assert response.status_code == 400
    assert "error" in response.json()
    assert len(store) == 0


def test_publish_rejects_non_json_body(client, store):
    response = client.post(SIGNAL_PATH, content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert len(store) == 0


@pytest.mark.parametrize(
    "params",
    [{"type": "offer"}, {"sessionId": "abc"}, {"sessionId": "abc", "type": "everything"}],
)
def test_fetch_validation_errors(client, params):
    client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "offer", "data": {"sdp": "X"}})
    response = client.get(SIGNAL_PATH, params=params)
    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE", "OPTIONS"])
def test_other_methods_not_allowed(client, method):
    response = client.request(method, SIGNAL_PATH)
    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}
    assert response.headers["allow"] == "GET, POST"


def test_health_reports_session_count(client):
    client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "offer", "data": {"sdp": "X"}})
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["sessions"] == 1
    assert body["max_age_s"] == 1800
    assert body["sweep_interval_s"] == 300


def test_sweep_makes_session_not_found(store, clock):
    app = create_app(store, max_age=60, sweep_interval=3600)
    with TestClient(app) as client:
        client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "offer", "data": {"sdp": "X"}})
        clock.advance(61)
        sweeper: ExpirySweeper = app.state.sweeper
        assert sweeper.run_once() == 1
        response = client.get(SIGNAL_PATH, params={"sessionId": "abc", "type": "offer"})
        assert response.status_code == 404

        # A fresh publish starts a new session rather than reviving the old one.
        client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "answer", "data": {"sdp": "Y"}})
        body = client.get(SIGNAL_PATH, params={"sessionId": "abc", "type": "all"}).json()
        assert body["offer"] is None
        assert body["answer"] == {"sdp": "Y"}


@pytest.mark.parametrize("params", [{"sessionId": "missing", "type": "bogus"}, {"sessionId": "missing"}])
def test_unknown_session_is_not_found_before_type_check(client, params):
    response = client.get(SIGNAL_PATH, params=params)
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


def test_empty_object_payload_is_accepted(client, store):
    response = client.post(SIGNAL_PATH, json={"sessionId": "abc", "type": "offer", "data": {}})
    assert response.status_code == 200
    assert client.get(SIGNAL_PATH, params={"sessionId": "abc", "type": "offer"}).json() == {"data": {}}
