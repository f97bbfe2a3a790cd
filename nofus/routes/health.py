"""
Module routes/health.py
Rôle:
- Endpoint de santé du relais (sonde de vie pour l'orchestrateur / le front).
"""
from fastapi import APIRouter

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health():
    """Renvoie un OK minimal."""
    return {"status": "ok"}
