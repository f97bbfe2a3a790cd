"""
Module routes/rooms.py
Rôle:
- POST /api/v1/rooms : crée une room et renvoie `{roomCode, hostToken}` (201).
- WS   /api/v1/rooms/{code}/ws : connexion hôte / joueur / reconnexion au relais.

Intégrations:
- RoomRegistry + RelayRouter : instances partagées, posées sur `app.state` par `main.py`.
- deps/auth.resolve_connection : décide du rôle à partir des paramètres du handshake.

Notes:
- Les refus sont envoyés AVANT `accept()` sous forme de réponse HTTP de refus
  (extension WebSocket Denial Response) avec un corps JSON `{error}` ;
  si le serveur ASGI ne supporte pas l'extension, on ferme avec le code 1008.
- Une seule boucle de réception par connexion : les messages d'un même émetteur
  sont relayés dans l'ordre.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from starlette.requests import HTTPConnection

from nofus.deps.auth import resolve_connection
from nofus.services.relay import RelayRouter
from nofus.services.room_registry import InvalidToken, JoinRejected, RoomNotFound, RoomRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/rooms", tags=["rooms"])

POLICY_VIOLATION = 1008


def get_registry(conn: HTTPConnection) -> RoomRegistry:
    return conn.app.state.registry


def get_relay(conn: HTTPConnection) -> RelayRouter:
    return conn.app.state.relay


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_room(registry: RoomRegistry = Depends(get_registry)):
    """Crée une room vide ; le jeton hôte n'est renvoyé qu'ici."""
    room = registry.create_room()
    return {"roomCode": room.code, "hostToken": room.host_token}


async def _deny(websocket: WebSocket, status_code: int, message: str) -> None:
    logger.info("Connection refused", extra={"status_code": status_code, "reason": message})
    try:
        await websocket.send_denial_response(JSONResponse({"error": message}, status_code=status_code))
    except RuntimeError:
        # Serveur sans l'extension "websocket.http.response"
        await websocket.close(code=POLICY_VIOLATION, reason=message)


@router.websocket("/{code}/ws")
async def room_socket(
    websocket: WebSocket,
    code: str,
    registry: RoomRegistry = Depends(get_registry),
    relay: RelayRouter = Depends(get_relay),
):
    try:
        grant = resolve_connection(registry, code, websocket.query_params)
    except RoomNotFound:
        await _deny(websocket, status.HTTP_404_NOT_FOUND, "Room not found")
        return
    except InvalidToken as exc:
        await _deny(websocket, status.HTTP_401_UNAUTHORIZED, str(exc))
        return
    except JoinRejected as exc:
        await _deny(websocket, status.HTTP_400_BAD_REQUEST, str(exc))
        return

    await websocket.accept()
    room, sender_id = grant.room, grant.sender_id
    if grant.member is None:
        await relay.attach_host(room, websocket)
    else:
        await relay.attach_player(room, grant.member, websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # trames texte ou binaires : le décodage JSON tranche
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await relay.route(room, sender_id, websocket, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await relay.detach(room, sender_id, websocket)
