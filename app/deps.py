# app/deps.py
from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.fsm.engine import ConversationEngine


def get_engine(request: Request) -> ConversationEngine:
    """Motor de conversación armado en el arranque (ver app.main)."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Motor de conversación no inicializado",
        )
    return engine
