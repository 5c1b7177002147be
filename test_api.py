import pytest
from fastapi.testclient import TestClient

from masyavpn import main
from masyavpn.tunnel.exceptions import AlreadyActive, EngineStartFailed, MalformedCredential
from masyavpn.tunnel.models import SessionStatus

BODY = {"protocol": "vmess", "payload": "ywBxBwG7AA==", "session_id": "b831381d"}


@pytest.fixture
def client():
    return TestClient(main.app)


def fake_connect(monkeypatch, outcome):
    received = []

    async def connect(credential):
        received.append(credential)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(main.session, "connect", connect)
    return received


def test_connect_forwards_the_credential(monkeypatch, client):
    received = fake_connect(monkeypatch, True)
    response = client.post("/connect", json=BODY)
    assert response.status_code == 200
    assert response.json() == {"status": "success", "connected": True}
    assert received[0].payload == BODY["payload"]
    assert received[0].session_id == BODY["session_id"]


@pytest.mark.parametrize("error, status", [
    (AlreadyActive("Already connected or connecting"), 409),
    (MalformedCredential("Invalid payload length"), 400),
    (EngineStartFailed("xray startup timeout"), 500),
])
def test_connect_errors_map_to_http_status(monkeypatch, client, error, status):
    fake_connect(monkeypatch, error)
    response = client.post("/connect", json=BODY)
    assert response.status_code == status
    assert str(error).splitlines()[0] in response.json()["detail"]


def test_connect_requires_payload(client):
    response = client.post("/connect", json={"protocol": "vmess", "session_id": "x"})
    assert response.status_code == 422


def test_disconnect_and_status(monkeypatch, client):
    calls = []

    async def disconnect():
        calls.append("disconnect")
        return True

    monkeypatch.setattr(main.session, "disconnect", disconnect)
    monkeypatch.setattr(main.session, "status", SessionStatus.CONNECTED)

    assert client.get("/status").json() == {"status": "connected"}
    assert client.post("/disconnect").json() == {"status": "success"}
    assert calls == ["disconnect"]
