"""
Service: content_provider.py
- Centralise les appels vers Wikipedia (API MediaWiki) pour obtenir des articles aléatoires
  servant de sujets de recherche (options des joueurs et articles "tout le monde ment").

Fonctions principales:
- WikipediaClient.fetch_articles(count): un appel `generator=random` avec extraits + URL.
- Appels bloquants (requests) : l'hôte les exécute dans un thread worker via anyio.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from nofus.config.settings import settings
from nofus.models.game import Article

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: Tuple[float, float] = (5.0, 15.0)  # connect, read
MAX_BATCH = 20


class ContentProviderError(RuntimeError):
    """Erreur encapsulant un échec de récupération d'articles."""


class WikipediaClient:
    """
    Client HTTP pour l'API MediaWiki.
    - Configure retries avec backoff exponentiel.
    - Journalise chaque requête avec un identifiant de corrélation.
    """

    def __init__(
        self,
        endpoint: str = settings.CONTENT_ENDPOINT,
        *,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = DEFAULT_TIMEOUT,
        user_agent: str = settings.CONTENT_USER_AGENT,
    ) -> None:
        self.endpoint = endpoint
        self.session = session or self._build_session(user_agent)
        self.timeout = timeout

    @staticmethod
    def _build_session(user_agent: str) -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers["User-Agent"] = user_agent
        return session

    @staticmethod
    def _params(count: int) -> Dict[str, Any]:
        return {
            "action": "query",
            "format": "json",
            "formatversion": 2,
            "generator": "random",
            "grnnamespace": 0,
            "grnlimit": count,
            "prop": "extracts|info",
            "exintro": 1,
            "explaintext": 1,
            "exlimit": count,
            "inprop": "url",
        }

    @staticmethod
    def _to_articles(data: Dict[str, Any]) -> List[Article]:
        pages = (data.get("query") or {}).get("pages") or []
        if isinstance(pages, dict):
            pages = list(pages.values())
        articles: List[Article] = []
        for page in pages:
            if "pageid" not in page or not page.get("title"):
                continue
            articles.append(
                Article(
                    id=str(page["pageid"]),
                    title=page["title"],
                    url=page.get("fullurl") or "",
                    extract=(page.get("extract") or "").strip(),
                )
            )
        return articles

    def fetch_articles(self, count: int) -> List[Article]:
        count = max(1, min(count, MAX_BATCH))
        request_id = f"articles-{uuid4().hex}"
        try:
            logger.debug("Content request start", extra={"content_request_id": request_id, "count": count})
            response = self.session.get(self.endpoint, params=self._params(count), timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as exc:
            logger.warning("Content request timeout", extra={"content_request_id": request_id})
            raise ContentProviderError("Content request timed out") from exc
        except requests.RequestException as exc:
            logger.error("Content request failed", exc_info=True, extra={"content_request_id": request_id})
            raise ContentProviderError("Content request failed") from exc
        except ValueError as exc:
            logger.error("Invalid JSON payload from content provider", extra={"content_request_id": request_id})
            raise ContentProviderError("Invalid JSON payload from content provider") from exc

        articles = self._to_articles(data)
        if not articles:
            raise ContentProviderError("Content provider returned no articles")
        logger.info("Articles fetched", extra={"content_request_id": request_id, "count": len(articles)})
        return articles[:count]
