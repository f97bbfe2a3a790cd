"""
Service: host_link.py
Rôle:
- Processus hôte : se connecte au relais en WebSocket avec le jeton hôte et fait tourner
  un `HostSession` (snapshot autoritatif, timers, SYNC_STATE).

Usage:
    HOST_ROOM_CODE=ABCD HOST_TOKEN=... python -m nofus.services.host_link

Notes:
- Un redémarrage de ce processus perd le snapshot en mémoire : au HOST_CONNECTED suivant,
  `HostSession` le redemande (scellé) à un joueur connecté.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Optional
from urllib.parse import urlencode

from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from nofus.config.settings import settings
from nofus.models.event import Envelope
from nofus.services.content_provider import WikipediaClient
from nofus.services.host_session import HostSession
from nofus.services.io_utils import decode, encode

logger = logging.getLogger(__name__)


class WebSocketTransport:
    """Adaptateur `send(envelope)` au-dessus d'une connexion websockets."""

    def __init__(self, ws: ClientConnection) -> None:
        self.ws = ws

    async def send(self, envelope: Envelope) -> None:
        try:
            await self.ws.send(encode(envelope.to_wire()))
        except ConnectionClosed:
            logger.warning("Relay connection closed, message lost", extra={"type": envelope.type})


def host_url(relay_url: str, room_code: str, token: str) -> str:
    return f"{relay_url.rstrip('/')}/api/v1/rooms/{room_code}/ws?{urlencode({'token': token})}"


async def run_host(
    room_code: str,
    token: str,
    relay_url: str = settings.RELAY_URL,
    content: Optional[WikipediaClient] = None,
) -> None:
    async with connect(host_url(relay_url, room_code, token)) as ws:
        session = HostSession(
            transport=WebSocketTransport(ws),
            host_token=token,
            room_code=room_code,
            content=content or WikipediaClient(),
        )
        consumer = asyncio.create_task(session.run())
        logger.info("Host linked to relay", extra={"room_code": room_code})
        try:
            async for raw in ws:
                try:
                    envelope = Envelope.model_validate(decode(raw))
                except (ValueError, ValidationError):
                    logger.warning("Malformed relay message ignored")
                    continue
                session.on_envelope(envelope)
        finally:
            consumer.cancel()
            with suppress(asyncio.CancelledError):
                await consumer
    logger.info("Host link closed", extra={"room_code": room_code})


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not settings.HOST_ROOM_CODE or not settings.HOST_TOKEN:
        raise SystemExit("HOST_ROOM_CODE and HOST_TOKEN must be set")
    asyncio.run(run_host(settings.HOST_ROOM_CODE, settings.HOST_TOKEN))


if __name__ == "__main__":
    main()
