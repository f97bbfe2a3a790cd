"""
Service: player_session.py
Rôle:
- Côté joueur : garder la dernière vue reçue (SYNC_STATE) et la copie scellée du snapshot.
- Répondre à REQUEST_STATE_RECOVERY avec cette copie, pour que l'hôte redémarré reprenne la partie.
- Construire les enveloppes d'action (toujours adressées à l'hôte).

Le joueur ne peut pas lire ni modifier la copie scellée : il la renvoie telle quelle.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from nofus.models import event as ev
from nofus.models.event import Envelope
from nofus.models.game import PlayerView

logger = logging.getLogger(__name__)


@dataclass
class PlayerSession:
    room_code: Optional[str] = None
    player_id: Optional[str] = None
    reconnect_token: Optional[str] = None
    view: Optional[PlayerView] = None
    recovery_blob: Optional[str] = None
    last_error: Optional[dict] = None

    def on_envelope(self, envelope: Envelope) -> Optional[Envelope]:
        """Traite un message reçu ; renvoie éventuellement la réponse à émettre."""
        payload = envelope.payload if isinstance(envelope.payload, dict) else {}
        kind = envelope.type

        if kind == ev.ROOM_JOINED:
            self.player_id = payload.get("playerId")
            self.reconnect_token = payload.get("reconnectToken")
            self.room_code = payload.get("roomCode") or self.room_code
        elif kind == ev.SYNC_STATE:
            self._store_sync(payload)
        elif kind == ev.REQUEST_STATE_RECOVERY:
            logger.info("Providing recovery state", extra={"player_id": self.player_id, "held": bool(self.recovery_blob)})
            return Envelope(
                type=ev.PROVIDE_STATE_RECOVERY, target=ev.TARGET_HOST, payload={"state": self.recovery_blob}
            )
        elif kind == ev.ERROR:
            self.last_error = payload
            logger.warning("Relay error", extra={"player_id": self.player_id, "error": payload})
        return None

    def _store_sync(self, payload: dict) -> None:
        try:
            self.view = PlayerView.model_validate(payload.get("state"))
        except ValidationError:
            logger.warning("Malformed state ignored", exc_info=True, extra={"player_id": self.player_id})
            return
        if payload.get("recovery"):
            self.recovery_blob = payload["recovery"]

    @staticmethod
    def action(kind: str, **payload: Any) -> Envelope:
        """Enveloppe d'action joueur, ex. `action(SUBMIT_VOTE, answerId="C")`."""
        return Envelope(type=kind, target=ev.TARGET_HOST, payload=payload)
