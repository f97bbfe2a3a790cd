"""
Service: recovery.py
Rôle:
- Sceller / desceller le snapshot autoritatif pour qu'un joueur en garde une copie
  chiffrée (anti-perte de données si le processus hôte redémarre).

Schéma:
- clé AES-256 dérivée du jeton hôte par PBKDF2-HMAC-SHA256 (sel fixe, 100 000 itérations) ;
- AES-GCM, nonce aléatoire de 12 octets ;
- sortie = base64(nonce || chiffré+tag).

Ce n'est PAS une garantie de confidentialité face à un joueur malveillant : le but
est seulement qu'un joueur ne puisse pas fabriquer un état accepté par l'hôte.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import ValidationError

from nofus.models.game import GameSnapshot
from nofus.services.io_utils import decode, dumps_bytes

logger = logging.getLogger(__name__)

KDF_SALT = b"nofus-state-recovery"
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32
NONCE_LENGTH = 12


class RecoveryError(RuntimeError):
    """Échec de descellement : blob illisible, mauvais jeton ou snapshot invalide."""


@lru_cache(maxsize=64)
def derive_key(token: str) -> bytes:
    """Dérive (et met en cache) la clé AES du jeton hôte."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=KDF_SALT, iterations=KDF_ITERATIONS)
    return kdf.derive(token.encode("utf-8"))


def seal(snapshot: GameSnapshot, token: str) -> str:
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = AESGCM(derive_key(token)).encrypt(nonce, dumps_bytes(snapshot.to_wire()), None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def unseal(blob: str, token: str) -> GameSnapshot:
    if not isinstance(blob, str) or not blob:
        raise RecoveryError("Empty recovery blob")
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise RecoveryError("Recovery blob is not valid base64") from exc
    if len(raw) <= NONCE_LENGTH:
        raise RecoveryError("Recovery blob too short")

    try:
        plaintext = AESGCM(derive_key(token)).decrypt(raw[:NONCE_LENGTH], raw[NONCE_LENGTH:], None)
    except InvalidTag as exc:
        raise RecoveryError("Recovery blob failed authentication") from exc

    try:
        return GameSnapshot.model_validate(decode(plaintext))
    except (ValueError, ValidationError) as exc:
        logger.warning("Recovered snapshot is not valid", exc_info=True)
        raise RecoveryError("Recovered snapshot is not valid") from exc
