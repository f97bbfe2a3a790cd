"""
Service: host_session.py
Rôle:
- Runtime de l'hôte : possède LE snapshot autoritatif de la room et le fait évoluer
  uniquement via `engine.machine.transition`.
- File unique (`asyncio.Queue`) consommée par une seule tâche (`run()`) : actions des
  joueurs, connexions/déconnexions, ticks du timer, articles reçus du provider.
- Après chaque changement : SYNC_STATE à chaque joueur connecté
  (`{state: vue projetée, recovery: snapshot scellé}`).

Démarrage (HOST_CONNECTED):
- snapshot déjà en mémoire → simple réconciliation des connexions ;
- aucun joueur connecté → lobby neuf ;
- sinon → REQUEST_STATE_RECOVERY à UN joueur connecté tiré au hasard, attente bornée
  (RECOVERY_TIMEOUT_SECONDS) de son PROVIDE_STATE_RECOVERY ; échec → lobby neuf.
  Une seule tentative.

Le transport est tout objet exposant `async send(envelope)` (lien WebSocket réel,
ou faux transport en test).
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set

import anyio

from nofus.config.settings import settings
from nofus.engine import guards
from nofus.engine.machine import initial_snapshot, transition
from nofus.models import event as ev
from nofus.models.event import Envelope, GameEvent
from nofus.models.game import SYSTEM_ARTICLES_OWNER, GameSnapshot, Phase, RoomConfig
from nofus.services.content_provider import ContentProviderError, WikipediaClient
from nofus.services.recovery import RecoveryError, seal, unseal
from nofus.services.view_projector import project_view

logger = logging.getLogger(__name__)

# Statuts du runtime hôte
STATUS_IDLE = "idle"              # pas encore de HOST_CONNECTED
STATUS_REQUESTING = "requesting"  # attente du PROVIDE_STATE_RECOVERY
STATUS_RUNNING = "running"

SYSTEM_ARTICLES_TARGET = 3


class Transport(Protocol):
    async def send(self, envelope: Envelope) -> None: ...


@dataclass
class HostSession:
    transport: Transport
    host_token: str
    room_code: str = ""
    config: RoomConfig = field(default_factory=RoomConfig)
    content: Optional[WikipediaClient] = None
    rng: random.Random = field(default_factory=random.Random)
    recovery_timeout: float = settings.RECOVERY_TIMEOUT_SECONDS
    tick_interval: float = settings.TICK_INTERVAL_SECONDS

    snapshot: Optional[GameSnapshot] = None
    status: str = STATUS_IDLE

    _queue: asyncio.Queue = field(default_factory=asyncio.Queue, init=False, repr=False)
    _recovery_future: Optional[asyncio.Future] = field(default=None, init=False, repr=False)
    _recovery_from: Optional[str] = field(default=None, init=False, repr=False)
    _fetching: Set[str] = field(default_factory=set, init=False, repr=False)
    _tasks: Set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    # ---------- entrées ----------
    def dispatch(self, event: GameEvent) -> None:
        """Met un événement en file (ex. NEXT_PHASE depuis l'écran hôte, sender "HOST")."""
        self._queue.put_nowait(event)

    def on_envelope(self, envelope: Envelope) -> None:
        """Point d'entrée des messages reçus du relais (non bloquant)."""
        kind = envelope.type
        if kind == ev.PROVIDE_STATE_RECOVERY:
            self._on_recovery_reply(envelope)
        elif kind == ev.ERROR:
            logger.warning("Relay error", extra={"room_code": self.room_code, "error": envelope.payload})
        elif kind in ev.PLAYER_ACTIONS or kind in (ev.HOST_CONNECTED, ev.PLAYER_CONNECTED, ev.PLAYER_DISCONNECTED):
            self.dispatch(GameEvent.from_envelope(envelope))
        else:
            logger.debug("Ignoring message", extra={"room_code": self.room_code, "type": kind})

    def _on_recovery_reply(self, envelope: Envelope) -> None:
        future = self._recovery_future
        if future is None or future.done() or envelope.sender_id != self._recovery_from:
            logger.info("Unexpected recovery reply ignored", extra={"sender_id": envelope.sender_id})
            return
        payload = envelope.payload if isinstance(envelope.payload, dict) else {}
        future.set_result(payload.get("state"))

    # ---------- boucle ----------
    async def run(self) -> None:
        """Consommateur unique de la file + ticker ; tourne jusqu'à annulation."""
        ticker = asyncio.create_task(self._tick_loop())
        try:
            while True:
                await self.handle(await self._queue.get())
        finally:
            ticker.cancel()
            for task in list(self._tasks):
                task.cancel()

    async def process_pending(self) -> None:
        """Traite tout ce qui est déjà en file (utile hors de `run()`)."""
        while not self._queue.empty():
            await self.handle(self._queue.get_nowait())

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.dispatch(GameEvent(type=ev.TIMER_TICK))

    async def handle(self, event: GameEvent) -> None:
        if event.type == ev.HOST_CONNECTED:
            await self._bootstrap(event.get("players") or [])
            return
        if event.type == ev.PROVIDE_ARTICLES:
            self._fetching.discard(event.get("playerId"))
        if self.snapshot is None:
            logger.debug("Event before bootstrap dropped", extra={"type": event.type})
            return
        updated = transition(self.snapshot, event, self.rng)
        if updated is self.snapshot:
            return
        self.snapshot = updated
        await self._after_change()

    # ---------- démarrage / récupération ----------
    async def _bootstrap(self, roster: List[Any]) -> None:
        members = [m for m in roster if isinstance(m, dict) and m.get("id")]
        connected = [m for m in members if m.get("isConnected")]

        snapshot = self.snapshot
        if snapshot is None:
            if connected:
                snapshot = await self._recover(connected)
            if snapshot is None:
                snapshot = initial_snapshot(self.room_code, self.config)
                logger.info("Fresh game started", extra={"room_code": self.room_code})
        self.status = STATUS_RUNNING

        for member in members:
            kind = ev.PLAYER_CONNECTED if member.get("isConnected") else ev.PLAYER_DISCONNECTED
            snapshot = transition(
                snapshot,
                GameEvent(type=kind, payload={"playerId": member["id"], "playerName": member.get("name")}),
                self.rng,
            )
        self.snapshot = snapshot
        await self._after_change()

    async def _recover(self, connected: List[Dict[str, Any]]) -> Optional[GameSnapshot]:
        target = self.rng.choice(connected)["id"]
        self.status = STATUS_REQUESTING
        self._recovery_from = target
        self._recovery_future = asyncio.get_running_loop().create_future()
        logger.info("Requesting state recovery", extra={"room_code": self.room_code, "player_id": target})
        try:
            await self.transport.send(Envelope(type=ev.REQUEST_STATE_RECOVERY, target=target, payload={}))
            blob = await asyncio.wait_for(self._recovery_future, self.recovery_timeout)
        except asyncio.TimeoutError:
            logger.warning("State recovery timed out", extra={"room_code": self.room_code, "player_id": target})
            return None
        finally:
            self._recovery_future = None
            self._recovery_from = None

        if not blob:
            logger.warning("Player held no recovery state", extra={"player_id": target})
            return None
        try:
            snapshot = unseal(blob, self.host_token)
        except RecoveryError:
            logger.warning("State recovery rejected", exc_info=True, extra={"player_id": target})
            return None
        logger.info("State recovered", extra={"room_code": snapshot.room_code, "phase": snapshot.phase.value})
        return snapshot

    # ---------- sorties ----------
    async def _after_change(self) -> None:
        await self._push_state()
        self._schedule_article_fetches()

    async def _push_state(self) -> None:
        snapshot = self.snapshot
        blob = seal(snapshot, self.host_token)
        for player in snapshot.connected_players():
            view = project_view(snapshot, player.id)
            await self.transport.send(
                Envelope(type=ev.SYNC_STATE, target=player.id, payload={"state": view.to_wire(), "recovery": blob})
            )

    # ---------- articles ----------
    def _schedule_article_fetches(self) -> None:
        snapshot = self.snapshot
        if self.content is None or snapshot.phase != Phase.TOPIC_SELECTION:
            return
        for player in snapshot.connected_players():
            if (
                player.id not in self._fetching
                and not snapshot.article_options.get(player.id)
                and guards.needs_article_choice(snapshot, player.id)
            ):
                self._start_fetch(player.id, snapshot.config.article_option_count)
        if len(snapshot.system_articles) < SYSTEM_ARTICLES_TARGET and SYSTEM_ARTICLES_OWNER not in self._fetching:
            self._start_fetch(SYSTEM_ARTICLES_OWNER, SYSTEM_ARTICLES_TARGET - len(snapshot.system_articles))

    def _start_fetch(self, owner: str, count: int) -> None:
        self._fetching.add(owner)
        task = asyncio.create_task(self._fetch_articles(owner, count))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch_articles(self, owner: str, count: int) -> None:
        try:
            articles = await anyio.to_thread.run_sync(self.content.fetch_articles, count)
        except ContentProviderError:
            logger.warning("Article fetch failed", exc_info=True, extra={"owner": owner})
            self._fetching.discard(owner)
            return
        self.dispatch(GameEvent(type=ev.PROVIDE_ARTICLES, payload={"playerId": owner, "articles": articles}))
