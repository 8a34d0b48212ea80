"""Session status endpoints for the voice intake service."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException

from ..models import schemas
from .realtime import manager

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/{session_id}", response_model=schemas.SessionStatusResponse)
async def get_session_status(session_id: str) -> schemas.SessionStatusResponse:
    """Return the current state, ticket and transcript for a connected UI session."""

    status = manager.status(session_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return status
