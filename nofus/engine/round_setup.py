"""
Construction des manches de devinette, à la fin des trois cycles de recherche.

- Une manche par (joueur, article choisi) ; les articles au-delà du premier ne
  sont conservés qu'avec la probabilité `player_additional_article_chance`
  (tirage par article, dans l'ordre, on s'arrête au premier échec).
- Mélange uniforme de la liste pour ne pas grouper les manches par joueur.
- Avec la probabilité `everyone_lies_chance`, une manche est remplacée par un
  article système sans expert, tant qu'il reste des articles système.
"""
from __future__ import annotations

import random
from typing import List, Optional

from nofus.models.game import NO_EXPERT, GameSnapshot, Round


def setup_rounds(snapshot: GameSnapshot, rng: Optional[random.Random] = None) -> List[Round]:
    rng = rng or random
    config = snapshot.config
    rounds: List[Round] = []

    for player_id in snapshot.players:
        for index, article in enumerate(snapshot.selected_articles.get(player_id, [])):
            if index > 0 and rng.random() >= config.player_additional_article_chance:
                break
            rounds.append(Round(target_player_id=player_id, article=article))

    rng.shuffle(rounds)

    system_articles = list(snapshot.system_articles)
    next_system = 0
    result: List[Round] = []
    for round_ in rounds:
        if next_system < len(system_articles) and rng.random() < config.everyone_lies_chance:
            round_ = round_.model_copy(
                update={
                    "article": system_articles[next_system],
                    "is_everyone_lies": True,
                    "target_player_id": NO_EXPERT,
                }
            )
            next_system += 1
        result.append(round_)
    return result


def shuffle_answers(round_: Round, rng: Optional[random.Random] = None) -> Round:
    """Fige l'ordre des réponses : auteurs des mensonges + l'expert (s'il existe)."""
    rng = rng or random
    answer_ids = list(round_.lies)
    if round_.has_expert and round_.target_player_id not in round_.lies:
        answer_ids.append(round_.target_player_id)
    rng.shuffle(answer_ids)
    return round_.model_copy(update={"shuffled_answer_ids": answer_ids})
