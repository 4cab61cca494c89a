"""Tests for the HTTP and WebSocket API."""

import pytest
from fastapi.testclient import TestClient

from kuber.main import app


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def read_until(websocket, msg_type, limit=20):
    for _ in range(limit):
        message = websocket.receive_json()
        if message.get("type") == msg_type:
            return message
    raise AssertionError(f"no {msg_type} message received")


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Process-Time-Ms" in response.headers


def test_readiness_reports_optional_services(client):
    data = client.get("/health/ready").json()
    assert data["status"] == "ready"
    assert data["checks"] == {"database": True, "action_router": True, "session_manager": True}
    assert data["services"]["cloud_llm"] is False
    assert data["services"]["local_llm"] is False


def test_metrics(client):
    data = client.get("/health/metrics").json()
    assert data["voice_mode"] == "client"
    assert data["intent_routing"] == "local"
    assert data["active_sessions"] == 0


def test_conversation_message_on_empty_shop(client):
    response = client.post("/api/v1/conversation/message", json={"text": "Kya khatam ho raha hai?"})

    assert response.status_code == 200
    data = response.json()
    assert data["response"] == "Sab items ka stock theek hai. Koi alert nahi!"
    assert data["intent"] == "LOW_STOCK_ALERT"
    assert data["triggers"] == []
    assert data["language"] == "hinglish"


def test_conversation_session_lifecycle(client):
    first = client.post(
        "/api/v1/conversation/message",
        json={"text": "udhar dikhao", "language": "en"}
    ).json()
    session_id = first["session_id"]

    history = client.get(f"/api/v1/conversation/history/{session_id}").json()
    assert [m["role"] for m in history["messages"]] == ["assistant", "user", "assistant"]
    assert history["context"]["last_intent"] == "UDHAR_KHATA"

    switched = client.post(f"/api/v1/conversation/language/{session_id}", json={"language": "hi"})
    assert switched.status_code == 200
    assert len(switched.json()["messages"]) == 1

    bad = client.post(f"/api/v1/conversation/language/{session_id}", json={"language": "xx"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "SESSION_ERROR"

    cleared = client.post(f"/api/v1/conversation/clear/{session_id}").json()
    assert cleared["status"] == "cleared"

    assert client.delete(f"/api/v1/conversation/session/{session_id}").status_code == 200
    assert client.get(f"/api/v1/conversation/history/{session_id}").status_code == 404


def test_retry_keeps_cloud_without_local_model(client):
    session_id = client.post(
        "/api/v1/conversation/message", json={"text": "stock dikhao"}
    ).json()["session_id"]

    data = client.post(f"/api/v1/conversation/retry/{session_id}").json()
    assert data["model"] == "cloud"
    assert data["is_model_ready"] is True
    assert data["has_model"] is False


def test_chat_without_api_key(client):
    response = client.post("/api/v1/chat", json={"messages": [{"role": "user", "content": "Namaste"}]})
    assert response.status_code == 503
    assert "GROQ_API_KEY" in response.json()["error"]


def test_parchi_scan_rejects_unreadable_image(client):
    response = client.post("/api/v1/parchi/scan", json={"image": "data:image/jpeg;base64,bm90IGFuIGltYWdl"})
    assert response.status_code == 422
    assert "error" in response.json()


def test_vision_endpoint_without_key(client):
    response = client.post("/api/v1/vision", json={"image": "data:image/jpeg;base64,bm90IGFuIGltYWdl"})
    assert response.status_code == 503


def test_voice_stream_answers_typed_text(client):
    with client.websocket_connect("/api/v1/voice/stream?mode=client&language=hinglish") as websocket:
        session = read_until(websocket, "session")
        assert session["mode"] == "client"
        assert session["language"] == "hinglish"

        websocket.send_json({"type": "ping"})
        read_until(websocket, "pong")

        websocket.send_json({"type": "text", "text": "Kya khatam ho raha hai?"})
        speak = read_until(websocket, "speak")
        assert speak["text"] == "Sab items ka stock theek hai. Koi alert nahi!"
        assert speak["locale"] == "hi-IN"


def test_voice_stream_rejects_unknown_language_switch(client):
    with client.websocket_connect("/api/v1/voice/stream") as websocket:
        read_until(websocket, "session")
        websocket.send_json({"type": "language", "language": "xx"})
        error = read_until(websocket, "error")
        assert "xx" in error["message"]


def test_languages_lists_display_names(client):
    data = client.get("/api/v1/conversation/languages").json()
    assert data["default"] == "hinglish"
    assert {"code": "ta", "name": "Tamil (தமிழ்)"} in data["languages"]
