"""
Utils: codes.py
Rôle:
- Générer les identifiants du relais : code de room, jeton hôte, jeton de reconnexion, player_id.

Notes d'implémentation:
- Codes de room : 4 lettres majuscules (sans I/O pour éviter les confusions à l'oral).
- Jetons : `secrets.token_urlsafe` (≥ 32 caractères, ce qui couvre la dérivation de clé).
- `taken` permet d'éviter une collision avec une room existante.
"""
import secrets
import string
from typing import Container, Optional
from uuid import uuid4

ROOM_CODE_LENGTH = 4
ROOM_CODE_ALPHABET = "".join(c for c in string.ascii_uppercase if c not in "IO")


def room_code(taken: Optional[Container[str]] = None, length: int = ROOM_CODE_LENGTH) -> str:
    """Tire un code de room libre (réessaie tant qu'il est déjà pris)."""
    taken = taken or ()
    while True:
        code = "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))
        if code not in taken:
            return code


def secret_token() -> str:
    return secrets.token_urlsafe(32)


def player_id() -> str:
    return uuid4().hex
