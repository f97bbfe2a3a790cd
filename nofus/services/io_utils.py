"""
Utilitaires JSON (rapides) basés sur orjson.
- encode(data) -> str   (texte WebSocket)
- decode(raw)  -> Any   (str ou bytes; lève ValueError si le JSON est invalide)
- dumps_bytes(data) -> bytes (utilisé pour sceller le snapshot)

Attention:
- orjson renvoie des bytes; `encode` les décode en UTF-8 pour `send_text`.
- `orjson.JSONDecodeError` hérite de ValueError.
"""
from typing import Any, Union

import orjson as json


def dumps_bytes(data: Any) -> bytes:
    return json.dumps(data)


def encode(data: Any) -> str:
    """Sérialise en texte JSON compact."""
    return json.dumps(data).decode("utf-8")


def decode(raw: Union[str, bytes]) -> Any:
    """Désérialise un message JSON (str ou bytes)."""
    return json.loads(raw)
