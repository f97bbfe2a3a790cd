"""
Service: relay.py
- Routeur sans état de jeu : relaie des enveloppes opaques entre l'hôte et les joueurs d'une room.
- Apposer `senderId` (jamais repris du client), résoudre `target` (HOST / ALL / player_id).
- Émettre les messages de cycle de vie (HOST_CONNECTED, ROOM_JOINED, PLAYER_CONNECTED/DISCONNECTED).
- Envois : snapshot des connexions hors verrou, un envoi raté n'interrompt pas les autres.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from nofus.models import event as ev
from nofus.models.event import Envelope, error_envelope
from nofus.services.io_utils import decode, encode
from nofus.services.room_registry import Member, Room, RoomRegistry

logger = logging.getLogger(__name__)

# Code de fermeture envoyé à une connexion remplacée par une plus récente
REPLACED_CLOSE_CODE = 4000


@dataclass
class RelayRouter:
    registry: RoomRegistry

    # ---------- envois ----------
    async def _send(self, conn: Any, envelope: Envelope) -> bool:
        """Envoie à une connexion ; renvoie False si elle est déjà fermée."""
        if conn is None:
            return False
        try:
            await conn.send_text(encode(envelope.to_wire()))
            return True
        except (RuntimeError, WebSocketDisconnect, OSError):
            logger.debug("Send to closed connection skipped", exc_info=True)
            return False

    async def _close(self, conn: Any, code: int = REPLACED_CLOSE_CODE) -> None:
        try:
            await conn.close(code=code)
        except (RuntimeError, WebSocketDisconnect, OSError):
            logger.debug("Close on already closed connection", exc_info=True)

    async def send_error(self, conn: Any, code: str, message: str) -> bool:
        return await self._send(conn, error_envelope(code, message))

    # ---------- cycle de vie ----------
    async def attach_host(self, room: Room, conn: Any) -> None:
        previous = self.registry.bind_host(room, conn)
        if previous is not None:
            logger.info("Host connection replaced", extra={"room_code": room.code})
            await self._close(previous)
        logger.info("Host attached", extra={"room_code": room.code})
        await self._send(conn, Envelope(type=ev.HOST_CONNECTED, payload={"players": room.roster()}))

    async def attach_player(self, room: Room, member: Member, conn: Any) -> None:
        previous = self.registry.bind_player(room, member.id, conn)
        if previous is not None:
            await self._close(previous)
        logger.info("Player attached", extra={"room_code": room.code, "player_id": member.id})
        await self._send(
            conn,
            Envelope(
                type=ev.ROOM_JOINED,
                payload={"playerId": member.id, "reconnectToken": member.reconnect_token, "roomCode": room.code},
            ),
        )
        await self._send(
            room.host_socket,
            Envelope(
                type=ev.PLAYER_CONNECTED,
                payload={"playerId": member.id, "playerName": member.name},
            ),
        )

    async def detach(self, room: Room, sender_id: str, conn: Any) -> None:
        """Fermeture d'une connexion : ne libère la place que si elle la détient encore."""
        if sender_id == ev.SENDER_HOST:
            if self.registry.release_host(room, conn):
                logger.info("Host detached", extra={"room_code": room.code})
            return
        if not self.registry.release_player(room, sender_id, conn):
            return
        logger.info("Player detached", extra={"room_code": room.code, "player_id": sender_id})
        await self._send(
            room.host_socket,
            Envelope(type=ev.PLAYER_DISCONNECTED, payload={"playerId": sender_id}),
        )

    # ---------- routage ----------
    def _parse(self, raw: Any) -> tuple[Optional[Envelope], Optional[tuple[str, str]]]:
        try:
            data = decode(raw)
        except ValueError:
            return None, ("INVALID_JSON", "Message is not valid JSON")
        try:
            envelope = Envelope.model_validate(data)
        except ValidationError:
            return None, ("INVALID_ENVELOPE", "Message must be an object with a non-empty type")
        if envelope.type in ev.RESERVED_TYPES:
            return None, ("RESERVED_TYPE", f"{envelope.type} is emitted by the relay only")
        return envelope, None

    async def route(self, room: Room, sender_id: str, conn: Any, raw: Any) -> int:
        """
        Relaie un message brut reçu de `sender_id`.
        Renvoie le nombre de connexions servies (0 si rejeté ou abandonné).
        """
        envelope, error = self._parse(raw)
        if error is not None:
            await self.send_error(conn, *error)
            return 0

        room.touch()
        stamped = envelope.model_copy(update={"sender_id": sender_id})
        target = stamped.target
        if not target:
            logger.debug("Envelope without target dropped", extra={"room_code": room.code, "type": stamped.type})
            return 0

        if target == ev.TARGET_HOST:
            if sender_id == ev.SENDER_HOST:
                return 0
            return int(await self._send(room.host_socket, stamped))

        players = self.registry.open_players(room)
        if target == ev.TARGET_ALL:
            served = 0
            for player_id, player_conn in players.items():
                if player_id != sender_id and await self._send(player_conn, stamped):
                    served += 1
            return served

        if target not in players:
            logger.debug("Target not connected", extra={"room_code": room.code, "target": target})
            return 0
        return int(await self._send(players[target], stamped))
