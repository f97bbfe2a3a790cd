"""
Machine à états autoritative (hôte)
===================================

Rôle
----
- `transition(snapshot, event, rng=None)` : fonction pure (snapshot, événement) -> snapshot.
- Dispatch explicite sur (phase, type d'événement) ; les gardes vivent dans `guards.py`.
- Après chaque événement traité, les transitions "automatiques" (toutes les
  soumissions reçues, etc.) sont évaluées jusqu'à stabilité.

Phases
------
lobby -> tutorial -> topicSelection ⇄ writing (3 cycles) -> guessing -> presenting
-> voting -> reveal ⇄ guessing ... -> leaderboard (terminal)

Notes
-----
- Une action refusée par une garde est un no-op : le même objet snapshot est renvoyé.
- Le hasard (avatars, constitution et mélange des manches) passe par `rng` pour
  rester rejouable en test.
"""
from __future__ import annotations

import logging
import random
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from nofus.engine import guards
from nofus.engine.rewarder import apply_awards, round_awards
from nofus.engine.round_setup import setup_rounds, shuffle_answers
from nofus.models import event as ev
from nofus.models.event import GameEvent
from nofus.models.game import (
    SYSTEM_ARTICLES_OWNER,
    Article,
    GameSnapshot,
    Phase,
    Player,
    Round,
    RoomConfig,
)

logger = logging.getLogger(__name__)

EXPERT_READY_DELAY = 2  # ticks avant que l'expert apparaisse "prêt"
MAX_TEXT_LENGTH = 500
_MAX_SETTLE_STEPS = 16

Handler = Callable[[GameSnapshot, GameEvent, Any], GameSnapshot]


def initial_snapshot(room_code: str = "", config: Optional[RoomConfig] = None) -> GameSnapshot:
    """Snapshot neuf, en phase lobby."""
    return GameSnapshot(room_code=room_code, config=config or RoomConfig())


# -------------------- utilitaires --------------------

def _clean_text(value: Any, max_length: int = MAX_TEXT_LENGTH) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text or len(text) > max_length:
        return None
    return text


def _replace_current_round(snapshot: GameSnapshot, round_: Round) -> GameSnapshot:
    rounds = list(snapshot.rounds)
    rounds[snapshot.current_round_index] = round_
    return snapshot.model_copy(update={"rounds": rounds})


def _parse_articles(raw: Any) -> list[Article]:
    articles: list[Article] = []
    for item in raw or []:
        try:
            articles.append(item if isinstance(item, Article) else Article.model_validate(item))
        except ValidationError:
            logger.warning("Ignoring malformed article", extra={"article": item})
    return articles


# -------------------- entrées de phase --------------------

def _enter_tutorial(snapshot: GameSnapshot) -> GameSnapshot:
    return snapshot.model_copy(update={"phase": Phase.TUTORIAL, "timer": None})


def _enter_topic_selection(snapshot: GameSnapshot) -> GameSnapshot:
    return snapshot.model_copy(
        update={"phase": Phase.TOPIC_SELECTION, "timer": snapshot.config.research_time_seconds}
    )


def _enter_writing(snapshot: GameSnapshot) -> GameSnapshot:
    return snapshot.model_copy(update={"phase": Phase.WRITING, "timer": snapshot.config.writing_time_seconds})


def _enter_guessing(snapshot: GameSnapshot) -> GameSnapshot:
    current = snapshot.current_round
    return snapshot.model_copy(
        update={
            "phase": Phase.GUESSING,
            "timer": snapshot.config.lie_time_seconds,
            "current_presenting_player_id": current.target_player_id if current else None,
            "expert_ready": bool(current and current.is_everyone_lies),
            "expert_ready_timer": None,
        }
    )


def _enter_presenting(snapshot: GameSnapshot, rng) -> GameSnapshot:
    current = snapshot.current_round
    if current is not None:
        snapshot = _replace_current_round(snapshot, shuffle_answers(current, rng))
    return snapshot.model_copy(
        update={"phase": Phase.PRESENTING, "timer": snapshot.config.presentation_time_seconds}
    )


def _enter_voting(snapshot: GameSnapshot) -> GameSnapshot:
    current = snapshot.current_round
    return snapshot.model_copy(
        update={
            "phase": Phase.VOTING,
            "timer": snapshot.config.vote_time_seconds,
            "expert_ready": bool(current and current.is_everyone_lies),
            "expert_ready_timer": None,
        }
    )


def _enter_reveal(snapshot: GameSnapshot) -> GameSnapshot:
    current = snapshot.current_round
    players = snapshot.players
    if current is not None:
        awards = round_awards(current)
        players = apply_awards(players, awards)
        logger.info(
            "Round scored",
            extra={"room_code": snapshot.room_code, "round_index": snapshot.current_round_index, "awards": awards},
        )
    return snapshot.model_copy(
        update={"phase": Phase.REVEAL, "timer": snapshot.config.reveal_time_seconds, "players": players}
    )


def _enter_leaderboard(snapshot: GameSnapshot) -> GameSnapshot:
    return snapshot.model_copy(
        update={"phase": Phase.LEADERBOARD, "timer": None, "current_presenting_player_id": None}
    )


def _finish_research(snapshot: GameSnapshot, rng) -> GameSnapshot:
    """Fin d'un cycle d'écriture : cycle suivant, ou constitution des manches."""
    if guards.has_more_research_rounds(snapshot):
        snapshot = snapshot.model_copy(
            update={"research_round_index": snapshot.research_round_index + 1, "has_rerolled": {}}
        )
        return _enter_topic_selection(snapshot)

    rounds = setup_rounds(snapshot, rng)
    logger.info("Rounds set up", extra={"room_code": snapshot.room_code, "round_count": len(rounds)})
    snapshot = snapshot.model_copy(update={"rounds": rounds, "current_round_index": 0})
    if not rounds:
        return _enter_leaderboard(snapshot)
    return _enter_guessing(snapshot)


def _advance_after_reveal(snapshot: GameSnapshot) -> GameSnapshot:
    if guards.has_more_guessing_rounds(snapshot):
        snapshot = snapshot.model_copy(update={"current_round_index": snapshot.current_round_index + 1})
        return _enter_guessing(snapshot)
    return _enter_leaderboard(snapshot)


def _on_timer_end(snapshot: GameSnapshot, rng) -> GameSnapshot:
    phase = snapshot.phase
    if phase == Phase.TOPIC_SELECTION:
        return _enter_writing(snapshot)
    if phase == Phase.WRITING:
        return _finish_research(snapshot, rng)
    if phase == Phase.GUESSING:
        return _enter_presenting(snapshot, rng)
    if phase == Phase.PRESENTING:
        return _enter_voting(snapshot)
    if phase == Phase.VOTING:
        return _enter_reveal(snapshot)
    if phase == Phase.REVEAL:
        return _advance_after_reveal(snapshot)
    return snapshot


# -------------------- handlers globaux --------------------

def _on_player_connected(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    player_id = event.get("playerId")
    if not player_id:
        return snapshot

    existing = snapshot.players.get(player_id)
    if existing is not None:
        if existing.is_connected:
            return snapshot
        players = {**snapshot.players, player_id: existing.model_copy(update={"is_connected": True})}
        return snapshot.model_copy(update={"players": players})

    if len(snapshot.players) >= snapshot.config.max_players:
        logger.info("Room full, player ignored", extra={"room_code": snapshot.room_code, "player_id": player_id})
        return snapshot

    avatar_id = event.get("avatarId")
    if not isinstance(avatar_id, int) or not 0 <= avatar_id <= 9:
        avatar_id = rng.randrange(10)
    player = Player(
        id=player_id,
        name=_clean_text(event.get("playerName"), 40) or f"Player-{player_id[:5]}",
        is_vip=not snapshot.players,
        avatar_id=avatar_id,
    )
    return snapshot.model_copy(update={"players": {**snapshot.players, player_id: player}})


def _on_player_disconnected(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    player = snapshot.players.get(event.get("playerId") or "")
    if player is None or not player.is_connected:
        return snapshot
    players = {**snapshot.players, player.id: player.model_copy(update={"is_connected": False})}
    return snapshot.model_copy(update={"players": players})


def _on_provide_articles(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    owner = event.get("playerId")
    articles = _parse_articles(event.get("articles"))
    if not articles:
        return snapshot
    if owner == SYSTEM_ARTICLES_OWNER:
        return snapshot.model_copy(update={"system_articles": [*snapshot.system_articles, *articles]})
    if (
        snapshot.phase != Phase.TOPIC_SELECTION
        or owner not in snapshot.players
        or snapshot.article_options.get(owner)
        or not guards.needs_article_choice(snapshot, owner)
    ):
        return snapshot
    return snapshot.model_copy(update={"article_options": {**snapshot.article_options, owner: articles}})


def _on_timer_tick(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    if snapshot.timer is None and snapshot.expert_ready_timer is None:
        return snapshot

    update: Dict[str, Any] = {}
    if snapshot.expert_ready_timer is not None:
        remaining = max(0, snapshot.expert_ready_timer - 1)
        update["expert_ready_timer"] = remaining
        update["expert_ready"] = snapshot.expert_ready or remaining == 0
    if snapshot.timer is not None:
        update["timer"] = max(0, snapshot.timer - 1)

    ticked = snapshot.model_copy(update=update)
    if ticked.timer == 0:
        return _on_timer_end(ticked, rng)
    return ticked


def _on_timer_end_event(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    return _on_timer_end(snapshot, rng)


# -------------------- handlers par phase --------------------

def _on_start_game(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    if not (guards.sender_is_vip(snapshot, event) and guards.enough_players(snapshot)):
        return snapshot
    logger.info("Game started", extra={"room_code": snapshot.room_code, "players": len(snapshot.players)})
    return _enter_tutorial(snapshot)


def _on_next_phase(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    if not guards.sender_can_advance(snapshot, event):
        return snapshot
    phase = snapshot.phase
    if phase == Phase.TUTORIAL:
        return _enter_topic_selection(snapshot)
    if phase == Phase.TOPIC_SELECTION:
        return _enter_writing(snapshot)
    if phase == Phase.PRESENTING:
        return _enter_voting(snapshot)
    if phase == Phase.REVEAL:
        return _advance_after_reveal(snapshot)
    return snapshot


def _on_reroll(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    if not guards.can_reroll(snapshot, event):
        return snapshot
    return snapshot.model_copy(update={"has_rerolled": {**snapshot.has_rerolled, event.sender_id: True}})


def _on_choose_article(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    player_id = event.sender_id
    if player_id not in snapshot.players or not guards.needs_article_choice(snapshot, player_id):
        return snapshot
    options = snapshot.article_options.get(player_id) or []
    chosen = next((a for a in options if a.id == event.get("articleId")), None)
    if chosen is None:
        return snapshot

    selected = [*snapshot.selected_articles.get(player_id, []), chosen.model_copy(update={"summary": ""})]
    remaining_options = {pid: arts for pid, arts in snapshot.article_options.items() if pid != player_id}
    return snapshot.model_copy(
        update={
            "selected_articles": {**snapshot.selected_articles, player_id: selected},
            "article_options": remaining_options,
        }
    )


def _on_submit_summary(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    player_id = event.sender_id
    summary = _clean_text(event.get("summary"))
    articles = snapshot.selected_articles.get(player_id or "", [])
    if summary is None or not any(a.id == event.get("articleId") for a in articles):
        return snapshot
    updated = [a.model_copy(update={"summary": summary}) if a.id == event.get("articleId") else a for a in articles]
    return snapshot.model_copy(update={"selected_articles": {**snapshot.selected_articles, player_id: updated}})


def _on_submit_lie(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    current = snapshot.current_round
    text = _clean_text(event.get("text"))
    player_id = event.sender_id
    if current is None or text is None or player_id not in snapshot.players:
        return snapshot
    if player_id == current.target_player_id:
        # L'expert ne ment pas : sa "soumission" est implicite, seul le drapeau prêt est différé
        return snapshot
    return _replace_current_round(snapshot, current.model_copy(update={"lies": {**current.lies, player_id: text}}))


def _on_mark_also_true(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    current = snapshot.current_round
    marked = event.get("playerId")
    if current is None or not current.has_expert or event.sender_id != current.target_player_id:
        return snapshot
    if marked not in current.lies or marked in current.marked_true:
        return snapshot
    return _replace_current_round(
        snapshot, current.model_copy(update={"marked_true": [*current.marked_true, marked]})
    )


def _on_submit_vote(snapshot: GameSnapshot, event: GameEvent, rng) -> GameSnapshot:
    current = snapshot.current_round
    voter_id = event.sender_id
    answer_id = event.get("answerId")
    if current is None or voter_id not in snapshot.players or voter_id == current.target_player_id:
        return snapshot
    if answer_id not in (current.shuffled_answer_ids or []) or answer_id == voter_id:
        return snapshot
    return _replace_current_round(
        snapshot, current.model_copy(update={"votes": {**current.votes, voter_id: answer_id}})
    )


_GLOBAL_HANDLERS: Dict[str, Handler] = {
    ev.PLAYER_CONNECTED: _on_player_connected,
    ev.PLAYER_DISCONNECTED: _on_player_disconnected,
    ev.PROVIDE_ARTICLES: _on_provide_articles,
    ev.TIMER_TICK: _on_timer_tick,
    ev.TIMER_END: _on_timer_end_event,
    ev.NEXT_PHASE: _on_next_phase,
}

_PHASE_HANDLERS: Dict[Tuple[Phase, str], Handler] = {
    (Phase.LOBBY, ev.START_GAME): _on_start_game,
    (Phase.TOPIC_SELECTION, ev.REROLL_ARTICLES): _on_reroll,
    (Phase.TOPIC_SELECTION, ev.CHOOSE_ARTICLE): _on_choose_article,
    (Phase.WRITING, ev.SUBMIT_SUMMARY): _on_submit_summary,
    (Phase.GUESSING, ev.SUBMIT_LIE): _on_submit_lie,
    (Phase.VOTING, ev.MARK_ALSO_TRUE): _on_mark_also_true,
    (Phase.VOTING, ev.SUBMIT_VOTE): _on_submit_vote,
}


# -------------------- transitions automatiques --------------------

def _arm_expert_gate(snapshot: GameSnapshot) -> GameSnapshot:
    """Démarre le compte à rebours de l'expert une fois la moitié des non-experts soumise."""
    current = snapshot.current_round
    if snapshot.phase not in (Phase.GUESSING, Phase.VOTING) or current is None:
        return snapshot
    if snapshot.expert_ready or snapshot.expert_ready_timer is not None:
        return snapshot
    submitted = len(current.lies) if snapshot.phase == Phase.GUESSING else len(current.votes)
    if submitted < guards.expert_gate_threshold(snapshot):
        return snapshot
    return snapshot.model_copy(update={"expert_ready_timer": EXPERT_READY_DELAY})


def _eventless(snapshot: GameSnapshot, rng) -> GameSnapshot:
    phase = snapshot.phase
    if phase == Phase.TOPIC_SELECTION and guards.all_players_chose_article(snapshot):
        return _enter_writing(snapshot)
    if phase == Phase.WRITING and guards.all_players_submitted_summary(snapshot):
        return _finish_research(snapshot, rng)
    if phase == Phase.GUESSING and guards.all_players_submitted_lie(snapshot):
        return _enter_presenting(snapshot, rng)
    if phase == Phase.VOTING and guards.all_players_voted(snapshot):
        return _enter_reveal(snapshot)
    return snapshot


def _settle(snapshot: GameSnapshot, rng) -> GameSnapshot:
    for _ in range(_MAX_SETTLE_STEPS):
        settled = _eventless(_arm_expert_gate(snapshot), rng)
        if settled is snapshot:
            break
        snapshot = settled
    return snapshot


def transition(snapshot: GameSnapshot, event: GameEvent, rng: Optional[random.Random] = None) -> GameSnapshot:
    """Applique `event` et renvoie le nouveau snapshot (le même objet si rien ne change)."""
    rng = rng or random
    handler = _PHASE_HANDLERS.get((snapshot.phase, event.type)) or _GLOBAL_HANDLERS.get(event.type)
    if handler is None:
        return snapshot
    updated = handler(snapshot, event, rng)
    if updated is snapshot:
        return snapshot
    return _settle(updated, rng)
