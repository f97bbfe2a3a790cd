"""
Models / game.py
Rôle:
- Définir le modèle de données du jeu (joueurs, articles, manches, configuration)
  et le snapshot autoritatif tenu par l'hôte.
- Tous les modèles sont immuables (frozen) : chaque transition produit une nouvelle
  valeur via `model_copy(update=...)`.

Sérialisation:
- Les champs sont en snake_case côté Python et en camelCase sur le fil
  (`model_dump(by_alias=True)`), ce qui correspond aux clients web existants.
- Le snapshot sérialisé est exactement ce que scelle le protocole de récupération.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Identifiant "pas d'expert" pour les manches où tout le monde ment
NO_EXPERT = "NONE"
# Identifiant utilisé par PROVIDE_ARTICLES pour les articles système
SYSTEM_ARTICLES_OWNER = "SYSTEM"


class Phase(str, Enum):
    LOBBY = "lobby"
    TUTORIAL = "tutorial"
    TOPIC_SELECTION = "topicSelection"
    WRITING = "writing"
    GUESSING = "guessing"
    PRESENTING = "presenting"
    VOTING = "voting"
    REVEAL = "reveal"
    LEADERBOARD = "leaderboard"


class WireModel(BaseModel):
    """Base commune : immuable, alias camelCase, construction possible par nom Python."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Player(WireModel):
    id: str
    name: str
    score: int = 0
    is_vip: bool = False
    is_connected: bool = True
    avatar_id: int = Field(0, ge=0, le=9)


class Article(WireModel):
    id: str
    title: str
    summary: str = ""  # rédigé par le joueur pendant la phase d'écriture
    url: str = ""
    extract: str = ""  # texte de référence fourni par le provider


class Round(WireModel):
    target_player_id: str  # l'expert, ou NO_EXPERT
    article: Article
    lies: Dict[str, str] = Field(default_factory=dict)
    votes: Dict[str, str] = Field(default_factory=dict)
    marked_true: List[str] = Field(default_factory=list)
    is_everyone_lies: bool = False
    shuffled_answer_ids: Optional[List[str]] = None

    @property
    def has_expert(self) -> bool:
        return not self.is_everyone_lies and self.target_player_id != NO_EXPERT


class RoomConfig(WireModel):
    max_players: int = Field(8, ge=3, le=12)
    min_players: int = 3
    articles_per_player: int = 3
    research_rounds: int = 3
    article_option_count: int = 6
    research_time_seconds: int = 240
    writing_time_seconds: int = 240
    lie_time_seconds: int = 60
    presentation_time_seconds: int = 600
    vote_time_seconds: int = 30
    reveal_time_seconds: int = 15
    everyone_lies_chance: float = Field(0.10, ge=0, le=1)
    player_additional_article_chance: float = Field(0.5, ge=0, le=1)


class GameSnapshot(WireModel):
    """État complet de la partie, détenu uniquement par l'hôte."""

    room_code: str = ""
    phase: Phase = Phase.LOBBY
    players: Dict[str, Player] = Field(default_factory=dict)
    config: RoomConfig = Field(default_factory=RoomConfig)
    timer: Optional[int] = None

    # Recherche (3 cycles topicSelection ⇄ writing)
    research_round_index: int = 0
    article_options: Dict[str, List[Article]] = Field(default_factory=dict)
    selected_articles: Dict[str, List[Article]] = Field(default_factory=dict)
    has_rerolled: Dict[str, bool] = Field(default_factory=dict)
    system_articles: List[Article] = Field(default_factory=list)

    # Manches
    current_round_index: int = 0
    rounds: List[Round] = Field(default_factory=list)
    current_presenting_player_id: Optional[str] = None
    expert_ready: bool = False
    expert_ready_timer: Optional[int] = None

    @property
    def current_round(self) -> Optional[Round]:
        if 0 <= self.current_round_index < len(self.rounds):
            return self.rounds[self.current_round_index]
        return None

    def connected_players(self) -> List[Player]:
        return [p for p in self.players.values() if p.is_connected]


class PublicPlayer(WireModel):
    id: str
    name: str
    score: int
    is_vip: bool
    is_connected: bool
    avatar_id: int


class Answer(WireModel):
    id: str
    text: str


class PlayerView(WireModel):
    """Vue restreinte envoyée à un joueur (SYNC_STATE)."""

    room_code: str
    phase: Phase
    player_id: str
    players: Dict[str, PublicPlayer]
    timer: Optional[int] = None

    # Recherche
    research_round_index: Optional[int] = None
    article_options: Optional[List[Article]] = None
    has_rerolled: Optional[bool] = None

    # Manches
    round_number: Optional[int] = None
    round_count: Optional[int] = None
    is_expert: Optional[bool] = None
    is_everyone_lies: Optional[bool] = None
    current_article: Optional[Article] = None
    my_submission: Optional[str] = None
    answers: Optional[List[Answer]] = None
    has_submitted: Optional[bool] = None
    has_voted: Optional[bool] = None
    pending_player_ids: Optional[List[str]] = None
    correct_answer_id: Optional[str] = None
    marked_true: Optional[List[str]] = None
    votes: Optional[Dict[str, str]] = None
