"""Maintenance endpoints - called periodically by an external scheduler."""

from fastapi import APIRouter, Depends

from peer_connect.api.deps import get_session_engine
from peer_connect.schemas.session import SweepResult
from peer_connect.services.session_service import SessionEngine

router = APIRouter()


@router.post("/sweep", response_model=SweepResult)
async def sweep_expired_sessions(engine: SessionEngine = Depends(get_session_engine)):
    """Abandon timed-out sessions and retry any scoring that did not land."""
    return await engine.sweep_expired()
