"""
Application FastAPI : point d'entrée du relais
==============================================

Rôle
----
- Instancie l'app FastAPI, configure le CORS (ouvert : les clients sont des navigateurs de joueurs),
- Monte les routeurs (REST + WebSocket),
- Partage un `RoomRegistry` et un `RelayRouter` via `app.state`,
- Lance la purge périodique des rooms inactives (lifespan).

Notes
-----
- Le relais ne garde aucun état de jeu : tout vit chez l'hôte.
- ⚠️ Le middleware CORS doit être ajouté AVANT les include_router.
- `uvicorn nofus.main:app --port 3000`, `python -m nofus.main` ou `nofus-relay`.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nofus.config.settings import settings
from nofus.routes.health import router as health_router
from nofus.routes.rooms import router as rooms_router
from nofus.services.relay import RelayRouter
from nofus.services.room_registry import RoomRegistry

logger = logging.getLogger(__name__)


async def _purge_idle_rooms(registry: RoomRegistry) -> None:
    while True:
        await asyncio.sleep(settings.ROOM_PURGE_INTERVAL_SECONDS)
        registry.purge_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Relay starting", extra={"app_name": settings.APP_NAME, "port": settings.PORT})
    purge_task = asyncio.create_task(_purge_idle_rooms(app.state.registry))
    try:
        yield
    finally:
        purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await purge_task


async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def create_app(registry: RoomRegistry | None = None) -> FastAPI:
    """Construit l'app ; un registre neuf par défaut (les tests en créent un par cas)."""
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.registry = registry or RoomRegistry()
    app.state.relay = RelayRouter(app.state.registry)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, not_found_handler)

    app.include_router(health_router)
    app.include_router(rooms_router)
    return app


app = create_app()


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
