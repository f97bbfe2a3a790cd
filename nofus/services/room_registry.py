"""
Room registry
=============

Registre en mémoire des rooms du relais. Le relais ne connaît ni les phases ni
les scores : seulement qui appartient à quelle room, avec quel jeton, et quelle
connexion occupe chaque place.

- Un verrou `RLock` protège les tables (les routes et la tâche de purge y accèdent).
- Les connexions sont opaques (tout objet exposant `send_text`/`close`).
"""
from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, List, Optional

from nofus.config.settings import settings
from nofus.utils import codes

logger = logging.getLogger(__name__)


class RoomNotFound(LookupError):
    """Code de room inconnu."""


class InvalidToken(PermissionError):
    """Jeton hôte ou jeton de reconnexion invalide."""


class JoinRejected(ValueError):
    """Entrée refusée (hôte absent, nom invalide, room pleine)."""


@dataclass
class Member:
    id: str
    name: str
    reconnect_token: str = field(repr=False)


@dataclass
class Room:
    code: str
    host_token: str = field(repr=False)
    members: Dict[str, Member] = field(default_factory=dict)
    host_socket: Optional[Any] = None
    player_sockets: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.last_activity = time.time()

    def is_open(self, player_id: str) -> bool:
        return self.player_sockets.get(player_id) is not None

    def has_open_connections(self) -> bool:
        return self.host_socket is not None or bool(self.player_sockets)

    def roster(self) -> List[Dict[str, Any]]:
        """Liste publique des membres (payload de HOST_CONNECTED)."""
        return [{"id": m.id, "name": m.name, "isConnected": self.is_open(m.id)} for m in self.members.values()]


def _same_secret(expected: str, given: Optional[str]) -> bool:
    return bool(given) and hmac.compare_digest(expected.encode("utf-8"), given.encode("utf-8"))


@dataclass
class RoomRegistry:
    max_players: int = settings.MAX_PLAYERS_PER_ROOM
    name_max_length: int = settings.PLAYER_NAME_MAX_LENGTH
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    rooms: Dict[str, Room] = field(default_factory=dict)

    def create_room(self) -> Room:
        with self._lock:
            room = Room(code=codes.room_code(taken=self.rooms), host_token=codes.secret_token())
            self.rooms[room.code] = room
        logger.info("Room created", extra={"room_code": room.code})
        return room

    def get(self, code: str) -> Room:
        normalized = (code or "").strip().upper()
        with self._lock:
            room = self.rooms.get(normalized)
        if room is None:
            raise RoomNotFound(normalized)
        return room

    def validate_host_token(self, code: str, token: Optional[str]) -> Room:
        room = self.get(code)
        if not _same_secret(room.host_token, token):
            raise InvalidToken("Invalid host token")
        return room

    def add_member(self, code: str, name: Optional[str]) -> Member:
        """
        Inscrit un nouveau joueur.
        Refus (JoinRejected) si l'hôte n'est pas connecté, si le nom est vide ou
        trop long, ou si la room est pleine.
        """
        room = self.get(code)
        cleaned = (name or "").strip()
        if not cleaned or len(cleaned) > self.name_max_length:
            raise JoinRejected("Invalid player name")
        with self._lock:
            if room.host_socket is None:
                raise JoinRejected("Host is not connected")
            if len(room.members) >= self.max_players:
                raise JoinRejected("Room is full")
            member = Member(id=codes.player_id(), name=cleaned, reconnect_token=codes.secret_token())
            room.members[member.id] = member
            room.touch()
        logger.info("Player joined", extra={"room_code": room.code, "player_id": member.id})
        return member

    def validate_reconnect(self, code: str, player_id: Optional[str], token: Optional[str]) -> Member:
        room = self.get(code)
        with self._lock:
            member = room.members.get(player_id or "")
        if member is None or not _same_secret(member.reconnect_token, token):
            raise InvalidToken("Invalid reconnect token")
        return member

    # ---------- places (host / joueurs) ----------
    def bind_host(self, room: Room, conn: Any) -> Optional[Any]:
        """Occupe la place hôte ; renvoie la connexion remplacée s'il y en avait une."""
        with self._lock:
            previous, room.host_socket = room.host_socket, conn
            room.touch()
        return previous if previous is not conn else None

    def bind_player(self, room: Room, player_id: str, conn: Any) -> Optional[Any]:
        with self._lock:
            previous = room.player_sockets.get(player_id)
            room.player_sockets[player_id] = conn
            room.touch()
        return previous if previous is not conn else None

    def release_host(self, room: Room, conn: Any) -> bool:
        """Libère la place hôte seulement si elle contient encore `conn`."""
        with self._lock:
            if room.host_socket is not conn:
                return False
            room.host_socket = None
            room.touch()
            return True

    def release_player(self, room: Room, player_id: str, conn: Any) -> bool:
        with self._lock:
            if room.player_sockets.get(player_id) is not conn:
                return False
            room.player_sockets.pop(player_id, None)
            room.touch()
            return True

    def open_players(self, room: Room) -> Dict[str, Any]:
        with self._lock:
            return dict(room.player_sockets)

    def purge_expired(self, now: Optional[float] = None, ttl: float = settings.ROOM_IDLE_TTL_SECONDS) -> List[str]:
        """Supprime les rooms sans connexion ouverte depuis plus de `ttl` secondes."""
        now = time.time() if now is None else now
        with self._lock:
            expired = [
                code
                for code, room in self.rooms.items()
                if not room.has_open_connections() and now - room.last_activity > ttl
            ]
            for code in expired:
                self.rooms.pop(code, None)
        if expired:
            logger.info("Idle rooms purged", extra={"room_codes": expired})
        return expired

    def stats(self) -> dict:
        with self._lock:
            return {
                "rooms": len(self.rooms),
                "hosts_connected": sum(1 for r in self.rooms.values() if r.host_socket is not None),
                "players_connected": sum(len(r.player_sockets) for r in self.rooms.values()),
            }
