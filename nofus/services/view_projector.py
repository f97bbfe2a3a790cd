"""
Service: view_projector.py
Rôle:
- Dériver, pour un joueur donné, la vue restreinte du snapshot autoritatif
  (payload `state` du message SYNC_STATE).

Ce qui n'est jamais exposé:
- les options d'articles et sélections des autres joueurs ;
- l'identité de l'expert (sauf à l'expert lui-même, et en `reveal`) ;
- les réponses des autres avant le mélange (elles n'apparaissent qu'à partir de `presenting`) ;
- les compteurs internes (expert_ready_timer, articles système, flags de reroll des autres).
"""
from __future__ import annotations

from typing import Dict, List, Optional

from nofus.engine import guards
from nofus.models.game import (
    Answer,
    Article,
    GameSnapshot,
    Phase,
    PlayerView,
    PublicPlayer,
    Round,
)

RESEARCH_PHASES = (Phase.TOPIC_SELECTION, Phase.WRITING)
ROUND_PHASES = (Phase.GUESSING, Phase.PRESENTING, Phase.VOTING, Phase.REVEAL)
ANSWER_PHASES = (Phase.PRESENTING, Phase.VOTING, Phase.REVEAL)
VISIBLE_OPTIONS = 3


def _public_players(snapshot: GameSnapshot) -> Dict[str, PublicPlayer]:
    return {pid: PublicPlayer(**p.model_dump()) for pid, p in snapshot.players.items()}


def _visible_options(snapshot: GameSnapshot, player_id: str) -> List[Article]:
    """Les 3 premières options ; les 3 suivantes après un reroll."""
    options = snapshot.article_options.get(player_id, [])
    if snapshot.has_rerolled.get(player_id) and len(options) > VISIBLE_OPTIONS:
        return options[VISIBLE_OPTIONS : VISIBLE_OPTIONS * 2]
    return options[:VISIBLE_OPTIONS]


def _active_article(snapshot: GameSnapshot, player_id: str) -> Optional[Article]:
    selected = snapshot.selected_articles.get(player_id, [])
    return selected[-1] if selected else None


def _resolve_answers(round_: Round) -> List[Answer]:
    answers = []
    for answer_id in round_.shuffled_answer_ids or []:
        if answer_id == round_.target_player_id and round_.has_expert:
            text = round_.article.summary
        else:
            text = round_.lies.get(answer_id, "")
        answers.append(Answer(id=answer_id, text=text))
    return answers


def _pending_players(snapshot: GameSnapshot, round_: Round) -> List[str]:
    """Joueurs encore attendus ; l'expert y figure tant que son drapeau "prêt" n'est pas levé."""
    submitted = round_.lies if snapshot.phase == Phase.GUESSING else round_.votes
    pending = [p.id for p in guards.non_expert_players(snapshot) if p.id not in submitted]
    if round_.has_expert and not snapshot.expert_ready:
        pending.append(round_.target_player_id)
    return sorted(pending)


def _round_article(round_: Round, phase: Phase, is_expert: bool) -> Article:
    """Pendant `guessing`, seul l'expert voit plus que le titre."""
    article = round_.article
    if is_expert or phase in ANSWER_PHASES:
        return article
    return Article(id=article.id, title=article.title, url=article.url)


def project_view(snapshot: GameSnapshot, player_id: str) -> PlayerView:
    phase = snapshot.phase
    fields: dict = {
        "room_code": snapshot.room_code,
        "phase": phase,
        "player_id": player_id,
        "players": _public_players(snapshot),
        "timer": snapshot.timer,
    }

    if phase in RESEARCH_PHASES:
        fields["research_round_index"] = snapshot.research_round_index
        if phase == Phase.TOPIC_SELECTION:
            fields["article_options"] = _visible_options(snapshot, player_id)
            fields["has_rerolled"] = snapshot.has_rerolled.get(player_id, False)
            fields["has_submitted"] = not guards.needs_article_choice(snapshot, player_id)
        else:
            fields["has_submitted"] = guards.summaries_written(snapshot, player_id) >= guards.required_articles(snapshot)
        fields["current_article"] = _active_article(snapshot, player_id)

    current = snapshot.current_round
    if phase in ROUND_PHASES and current is not None:
        is_expert = current.has_expert and current.target_player_id == player_id
        fields.update(
            round_number=snapshot.current_round_index + 1,
            round_count=len(snapshot.rounds),
            is_expert=is_expert,
            is_everyone_lies=current.is_everyone_lies,
            current_article=_round_article(current, phase, is_expert),
            my_submission=current.article.summary if is_expert else current.lies.get(player_id),
            has_submitted=is_expert or player_id in current.lies,
            has_voted=player_id in current.votes,
        )
        if phase in (Phase.GUESSING, Phase.VOTING):
            fields["pending_player_ids"] = _pending_players(snapshot, current)
        if phase in ANSWER_PHASES:
            fields["answers"] = _resolve_answers(current)
        if phase == Phase.REVEAL:
            fields["correct_answer_id"] = current.target_player_id if current.has_expert else None
            fields["marked_true"] = list(current.marked_true)
            fields["votes"] = dict(current.votes)

    return PlayerView(**fields)
