import pytest
from fastapi.testclient import TestClient

from backend.app import app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("ZAC_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("ZAC_LOG_FORMAT", "json")
    with TestClient(app) as c:
        yield c


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["backend"] == "memory"
    assert body["session_id"]


def test_chat_and_facts(client):
    resp = client.post("/chat", json={"message": "My name is Alex", "session_id": "web"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["session_id"] == "web"
    assert "Alex" in body["content"]
    assert body["confidence"] == 0.95

    facts = client.get("/memory/facts", params={"session_id": "web"}).json()
    assert [(f["key"], f["value"]) for f in facts] == [("name", "Alex")]

    recall = client.get("/memory/recall", params={"q": "name", "session_id": "web"}).json()
    assert "Alex" in recall["summary"]


def test_math_over_http(client):
    body = client.post("/chat", json={"message": "6 * 7"}).json()
    assert body["content"] == "6 × 7 = 42"
    assert body["intent"] == "math"


def test_empty_message_is_rejected(client):
    assert client.post("/chat", json={"message": ""}).status_code == 422


def test_forget_fact(client):
    client.post("/chat", json={"message": "I live in Berlin", "session_id": "web2"})
    resp = client.delete("/memory/facts/location", params={"session_id": "web2"})
    assert resp.status_code == 200
    assert resp.json() == {"removed": ["location"]}
    assert client.delete("/memory/facts/location", params={"session_id": "web2"}).status_code == 404


def test_knowledge_search_hits_seed(client):
    hits = client.get("/knowledge/search", params={"q": "photosynthesis"}).json()
    assert "photosynthesis" in [h["term"] for h in hits]
    assert all(0 < h["score"] <= 1 for h in hits)


def test_status_and_clear(client):
    client.post("/chat", json={"message": "hello", "session_id": "web3"})
    status = client.get("/status").json()
    assert status["session_id"] == "web3"
    assert status["turns"] >= 1

    cleared = client.post("/memory/clear").json()
    assert cleared["records"] == 2
