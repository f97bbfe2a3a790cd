"""
Autorisation des connexions WebSocket au relais
===============================================

Objectif
--------
Déterminer, à partir des paramètres de requête du handshake, QUI se connecte :

1) `?token=<hostToken>`                         → l'hôte de la room ;
2) `?name=<nom>`                                → un nouveau joueur ;
3) `?name=<nom>&playerId=<id>&token=<jeton>`    → un joueur qui se reconnecte.

Toute autre combinaison est refusée.

Codes retour (appliqués par la route)
-------------------------------------
- 404 si la room est inconnue (`RoomNotFound`),
- 401 si un jeton est invalide (`InvalidToken`),
- 400 si l'entrée est refusée ou les paramètres incohérents (`JoinRejected`).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from nofus.models.event import SENDER_HOST
from nofus.services.room_registry import JoinRejected, Member, Room, RoomRegistry

ROLE_HOST = "host"
ROLE_PLAYER = "player"


@dataclass(frozen=True)
class ConnectionGrant:
    role: str
    room: Room
    member: Optional[Member] = None

    @property
    def sender_id(self) -> str:
        """Identifiant apposé par le relais sur les messages de cette connexion."""
        return SENDER_HOST if self.role == ROLE_HOST else self.member.id


def resolve_connection(registry: RoomRegistry, code: str, params: Mapping[str, str]) -> ConnectionGrant:
    """Vérifie les paramètres de handshake et renvoie le rôle accordé."""
    token = params.get("token")
    name = params.get("name")
    player_id = params.get("playerId")

    room = registry.get(code)

    if token and not name and not player_id:
        return ConnectionGrant(role=ROLE_HOST, room=registry.validate_host_token(room.code, token))

    if name and player_id and token:
        member = registry.validate_reconnect(room.code, player_id, token)
        return ConnectionGrant(role=ROLE_PLAYER, room=room, member=member)

    if name and not player_id and not token:
        return ConnectionGrant(role=ROLE_PLAYER, room=room, member=registry.add_member(room.code, name))

    raise JoinRejected("Unsupported connection parameters")
