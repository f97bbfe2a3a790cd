"""
Configuration de l'application (Settings)
=========================================

Rôle
----
- Centraliser les paramètres du relais (nom, host/port, rétention des rooms)
  et du processus hôte (URL du relais, code de room, jeton hôte, provider d'articles).
- Les valeurs par défaut conviennent pour un environnement de dev local.
- Les variables peuvent être surchargées via un fichier `.env` ou l'environnement.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'env et `.env`.
- Les services/routers importent `from nofus.config.settings import settings`.

Exemples de `.env`
------------------
PORT=3000
LOG_LEVEL="DEBUG"
ROOM_IDLE_TTL_SECONDS=1800
RELAY_URL="ws://localhost:3000"
HOST_ROOM_CODE="ABCD"
HOST_TOKEN="jeton-renvoye-par-post-rooms"
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Nom du service (apparaît dans les logs de démarrage)
    APP_NAME: str = "Nofus Relay"
    # Bind réseau (FastAPI / Uvicorn)
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Relais : limites et rétention des rooms en mémoire
    MAX_PLAYERS_PER_ROOM: int = 12
    PLAYER_NAME_MAX_LENGTH: int = 20
    ROOM_IDLE_TTL_SECONDS: int = 60 * 60
    ROOM_PURGE_INTERVAL_SECONDS: int = 60

    # Hôte : cadence du timer de jeu et attente de la récupération d'état
    TICK_INTERVAL_SECONDS: float = 1.0
    RECOVERY_TIMEOUT_SECONDS: float = 5.0

    # Provider d'articles (API MediaWiki, generator=random)
    CONTENT_ENDPOINT: str = "https://en.wikipedia.org/w/api.php"
    CONTENT_USER_AGENT: str = "nofus-party-game/0.1 (https://github.com/nofus)"

    # Processus hôte (host_link) : où se connecter et avec quel jeton
    RELAY_URL: str = "ws://localhost:3000"
    HOST_ROOM_CODE: str = ""
    HOST_TOKEN: str = ""

    # Paramétrage pydantic-settings :
    # - lit le fichier .env (UTF-8) si présent
    # - ignore les clés supplémentaires pour éviter les erreurs
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Instance unique importable partout : `settings`
settings = Settings()
