import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketDenialResponse

from nofus.main import create_app


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def _create_room(client):
    response = client.post("/api/v1/rooms")
    assert response.status_code == 201
    return response.json()


def _ws(code, **params):
    query = "&".join(f"{k}={v}" for k, v in params.items())
    return f"/api/v1/rooms/{code}/ws?{query}"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_unknown_route_returns_json_404(client):
    response = client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "Not found"}


def test_create_room_payload(client):
    payload = _create_room(client)
    assert set(payload) == {"roomCode", "hostToken"}
    assert len(payload["roomCode"]) == 4


def test_cors_allows_any_origin(client):
    response = client.options(
        "/api/v1/rooms",
        headers={"Origin": "http://example.org", "Access-Control-Request-Method": "POST"},
    )
    assert response.headers["access-control-allow-origin"] == "*"


@pytest.mark.parametrize(
    "params, status",
    [
        ({"token": "wrong"}, 401),
        ({"name": "Alice"}, 400),  # hôte pas encore connecté
        ({"name": "Alice", "playerId": "ghost", "token": "nope"}, 401),
        ({"playerId": "ghost"}, 400),
        ({}, 400),
    ],
)
def test_connection_denials(client, params, status):
    room = _create_room(client)
    with pytest.raises(WebSocketDenialResponse) as denied:
        with client.websocket_connect(_ws(room["roomCode"], **params)):
            pass
    assert denied.value.status_code == status
    assert "error" in denied.value.json()


def test_unknown_room_is_404(client):
    with pytest.raises(WebSocketDenialResponse) as denied:
        with client.websocket_connect(_ws("ZZZZ", token="x")):
            pass
    assert denied.value.status_code == 404


def test_relay_routes_between_host_and_player(client):
    room = _create_room(client)
    code = room["roomCode"]

    with client.websocket_connect(_ws(code, token=room["hostToken"])) as host:
        hello = host.receive_json()
        assert hello == {"type": "HOST_CONNECTED", "payload": {"players": []}}

        with client.websocket_connect(_ws(code, name="Alice")) as player:
            joined = player.receive_json()
            assert joined["type"] == "ROOM_JOINED"
            player_id = joined["payload"]["playerId"]
            assert joined["payload"]["reconnectToken"]

            connected = host.receive_json()
            assert connected == {"type": "PLAYER_CONNECTED", "payload": {"playerId": player_id, "playerName": "Alice"}}

            # senderId est toujours réécrit par le relais
            player.send_json({"type": "SUBMIT_LIE", "target": "HOST", "senderId": "forged", "payload": {"text": "x"}})
            relayed = host.receive_json()
            assert relayed["senderId"] == player_id
            assert relayed["payload"] == {"text": "x"}

            host.send_json({"type": "SYNC_STATE", "target": player_id, "payload": {"state": {}}})
            synced = player.receive_json()
            assert synced["type"] == "SYNC_STATE"
            assert synced["senderId"] == "HOST"

            player.send_text("{not json")
            assert player.receive_json()["payload"]["code"] == "INVALID_JSON"

            player.send_json({"payload": {}})
            assert player.receive_json()["payload"]["code"] == "INVALID_ENVELOPE"

            player.send_json({"type": "PLAYER_CONNECTED", "target": "HOST"})
            assert player.receive_json()["payload"]["code"] == "RESERVED_TYPE"

        gone = host.receive_json()
        assert gone == {"type": "PLAYER_DISCONNECTED", "payload": {"playerId": player_id}}


def test_player_reconnects_with_token(client):
    room = _create_room(client)
    code = room["roomCode"]

    with client.websocket_connect(_ws(code, token=room["hostToken"])) as host:
        host.receive_json()
        with client.websocket_connect(_ws(code, name="Bob")) as player:
            joined = player.receive_json()["payload"]
            host.receive_json()
        host.receive_json()  # PLAYER_DISCONNECTED

        url = _ws(code, name="Bob", playerId=joined["playerId"], token=joined["reconnectToken"])
        with client.websocket_connect(url) as again:
            rejoined = again.receive_json()["payload"]
            assert rejoined["playerId"] == joined["playerId"]
            assert host.receive_json()["payload"]["playerId"] == joined["playerId"]


def test_host_reconnect_lists_members(client):
    room = _create_room(client)
    code = room["roomCode"]

    with client.websocket_connect(_ws(code, token=room["hostToken"])) as host:
        host.receive_json()
        with client.websocket_connect(_ws(code, name="Alice")) as player:
            player_id = player.receive_json()["payload"]["playerId"]
            host.receive_json()

            host.close()
            with client.websocket_connect(_ws(code, token=room["hostToken"])) as new_host:
                hello = new_host.receive_json()
                assert hello["payload"]["players"] == [{"id": player_id, "name": "Alice", "isConnected": True}]


def test_binary_frames_are_parsed_and_bad_ones_answered(client):
    room = _create_room(client)
    code = room["roomCode"]

    with client.websocket_connect(_ws(code, token=room["hostToken"])) as host:
        host.receive_json()
        with client.websocket_connect(_ws(code, name="Alice")) as player:
            player_id = player.receive_json()["payload"]["playerId"]
            host.receive_json()

            player.send_bytes(b"\xff\xfe not json")
            error = player.receive_json()
            assert error["type"] == "ERROR"
            assert error["payload"]["code"] == "INVALID_JSON"

            # la connexion reste ouverte et relaie toujours
            player.send_bytes(b'{"type": "SUBMIT_VOTE", "target": "HOST", "payload": {"answerId": "x"}}')
            relayed = host.receive_json()
            assert relayed["type"] == "SUBMIT_VOTE"
            assert relayed["senderId"] == player_id
