"""
Models / event.py
Rôle:
- Définir l'enveloppe échangée sur les WebSockets (relais <-> hôte <-> joueurs).
- Lister les types de messages connus.
- Définir l'événement interne consommé par la machine à états de l'hôte.

Notes:
- `senderId` est toujours apposé par le relais ; la valeur envoyée par un client est ignorée.
- `target` vaut "HOST", "ALL" ou un player_id.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

TARGET_HOST = "HOST"
TARGET_ALL = "ALL"
SENDER_HOST = "HOST"

# Cycle de vie de la room (émis par le relais uniquement)
ROOM_JOINED = "ROOM_JOINED"
ERROR = "ERROR"
PLAYER_CONNECTED = "PLAYER_CONNECTED"
PLAYER_DISCONNECTED = "PLAYER_DISCONNECTED"
HOST_CONNECTED = "HOST_CONNECTED"

# Joueur -> hôte (relayés)
START_GAME = "START_GAME"
NEXT_PHASE = "NEXT_PHASE"
CHOOSE_ARTICLE = "CHOOSE_ARTICLE"
SUBMIT_SUMMARY = "SUBMIT_SUMMARY"
SUBMIT_LIE = "SUBMIT_LIE"
SUBMIT_VOTE = "SUBMIT_VOTE"
MARK_ALSO_TRUE = "MARK_ALSO_TRUE"
REROLL_ARTICLES = "REROLL_ARTICLES"

# Hôte -> joueurs
SYNC_STATE = "SYNC_STATE"

# Récupération d'état
REQUEST_STATE_RECOVERY = "REQUEST_STATE_RECOVERY"
PROVIDE_STATE_RECOVERY = "PROVIDE_STATE_RECOVERY"

# Internes à l'hôte (jamais acceptés depuis le réseau)
PROVIDE_ARTICLES = "PROVIDE_ARTICLES"
TIMER_TICK = "TIMER_TICK"
TIMER_END = "TIMER_END"

RESERVED_TYPES = frozenset({ROOM_JOINED, ERROR, PLAYER_CONNECTED, PLAYER_DISCONNECTED, HOST_CONNECTED})

PLAYER_ACTIONS = frozenset(
    {
        START_GAME,
        NEXT_PHASE,
        CHOOSE_ARTICLE,
        SUBMIT_SUMMARY,
        SUBMIT_LIE,
        SUBMIT_VOTE,
        MARK_ALSO_TRUE,
        REROLL_ARTICLES,
    }
)


class Envelope(BaseModel):
    """Enveloppe réseau : {type, payload, target?, senderId?}."""

    type: str = Field(min_length=1)
    payload: Any = None
    target: Optional[str] = None
    sender_id: Optional[str] = Field(None, alias="senderId")

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def error_envelope(code: str, message: str) -> Envelope:
    return Envelope(type=ERROR, payload={"code": code, "message": message})


@dataclass(frozen=True)
class GameEvent:
    """Événement appliqué par le réducteur de l'hôte (`engine.machine.transition`)."""

    type: str
    sender_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    @classmethod
    def from_envelope(cls, envelope: Envelope) -> "GameEvent":
        payload = envelope.payload if isinstance(envelope.payload, dict) else {}
        return cls(type=envelope.type, sender_id=envelope.sender_id, payload=dict(payload))
