"""
Gardes de la machine à états.

Chaque garde est un prédicat pur sur (snapshot[, event]) pour pouvoir être
testé isolément. Toutes les conditions "chaque joueur" ne portent que sur les
joueurs actuellement connectés : une déconnexion ne bloque jamais la partie.
"""
from __future__ import annotations

import math
from typing import List

from nofus.models.event import SENDER_HOST, GameEvent
from nofus.models.game import GameSnapshot, Player


def sender_is_vip(snapshot: GameSnapshot, event: GameEvent) -> bool:
    player = snapshot.players.get(event.sender_id or "")
    return bool(player and player.is_vip)


def sender_can_advance(snapshot: GameSnapshot, event: GameEvent) -> bool:
    """NEXT_PHASE : le VIP, ou l'hôte lui-même."""
    return event.sender_id == SENDER_HOST or sender_is_vip(snapshot, event)


def enough_players(snapshot: GameSnapshot) -> bool:
    return len(snapshot.connected_players()) >= snapshot.config.min_players


def has_more_research_rounds(snapshot: GameSnapshot) -> bool:
    return snapshot.research_round_index < snapshot.config.research_rounds - 1


def has_more_guessing_rounds(snapshot: GameSnapshot) -> bool:
    return snapshot.current_round_index < len(snapshot.rounds) - 1


def required_articles(snapshot: GameSnapshot) -> int:
    """Le cycle de recherche k exige k+1 articles choisis (et résumés)."""
    return snapshot.research_round_index + 1


def can_reroll(snapshot: GameSnapshot, event: GameEvent) -> bool:
    return event.sender_id in snapshot.players and not snapshot.has_rerolled.get(event.sender_id, False)


def needs_article_choice(snapshot: GameSnapshot, player_id: str) -> bool:
    return len(snapshot.selected_articles.get(player_id, [])) < required_articles(snapshot)


def all_players_chose_article(snapshot: GameSnapshot) -> bool:
    connected = snapshot.connected_players()
    return bool(connected) and all(not needs_article_choice(snapshot, p.id) for p in connected)


def summaries_written(snapshot: GameSnapshot, player_id: str) -> int:
    return sum(1 for a in snapshot.selected_articles.get(player_id, []) if a.summary)


def all_players_submitted_summary(snapshot: GameSnapshot) -> bool:
    expected = required_articles(snapshot)
    connected = snapshot.connected_players()
    return bool(connected) and all(summaries_written(snapshot, p.id) >= expected for p in connected)


def non_expert_players(snapshot: GameSnapshot) -> List[Player]:
    """Joueurs connectés qui doivent mentir/voter pendant la manche courante."""
    current = snapshot.current_round
    target = current.target_player_id if current else None
    return [p for p in snapshot.connected_players() if p.id != target]


def expert_gate_threshold(snapshot: GameSnapshot) -> int:
    return math.ceil(len(non_expert_players(snapshot)) / 2)


def all_players_submitted_lie(snapshot: GameSnapshot) -> bool:
    current = snapshot.current_round
    if current is None:
        return False
    return snapshot.expert_ready and all(p.id in current.lies for p in non_expert_players(snapshot))


def all_players_voted(snapshot: GameSnapshot) -> bool:
    current = snapshot.current_round
    if current is None:
        return False
    return snapshot.expert_ready and all(p.id in current.votes for p in non_expert_players(snapshot))
