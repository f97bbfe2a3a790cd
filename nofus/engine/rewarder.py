"""
Attribution des points d'une manche (entrée en phase `reveal`).

Pour chaque vote (votant -> réponse choisie) :
- réponse de l'expert, ou mensonge marqué "vrai aussi" : le votant gagne 500 ;
- sinon l'auteur du mensonge choisi gagne 700.
L'expert ne vote jamais (exclu du pool de votants par la machine).
"""
from __future__ import annotations

from typing import Dict

from nofus.models.game import Player, Round

POINTS_FOR_FOOLING = 700
POINTS_FOR_CORRECT_VOTE = 500


def round_awards(round_: Round) -> Dict[str, int]:
    """Return the points earned per player id for a completed round."""
    awards: Dict[str, int] = {}
    expert_id = round_.target_player_id if round_.has_expert else None
    for voter_id, answer_id in round_.votes.items():
        if voter_id == round_.target_player_id:
            continue
        if answer_id == expert_id or answer_id in round_.marked_true:
            awards[voter_id] = awards.get(voter_id, 0) + POINTS_FOR_CORRECT_VOTE
        elif answer_id in round_.lies:
            awards[answer_id] = awards.get(answer_id, 0) + POINTS_FOR_FOOLING
    return awards


def apply_awards(players: Dict[str, Player], awards: Dict[str, int]) -> Dict[str, Player]:
    updated = dict(players)
    for player_id, points in awards.items():
        player = updated.get(player_id)
        if player is None:
            continue
        updated[player_id] = player.model_copy(update={"score": player.score + points})
    return updated
