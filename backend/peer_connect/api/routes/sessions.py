"""Session endpoints - pair up, answer cards, poll the session view, leave."""

from fastapi import APIRouter, Depends

from peer_connect.api.deps import get_current_user_id, get_matchmaker, get_session_engine
from peer_connect.schemas.session import (
    AnswerRequest,
    PairingRequest,
    PairingResponse,
    SessionView,
)
from peer_connect.services.matchmaking_service import Matchmaker
from peer_connect.services.session_service import SessionEngine

router = APIRouter()


@router.post("/pair", response_model=PairingResponse)
async def request_pairing(
    req: PairingRequest,
    user_id: str = Depends(get_current_user_id),
    matchmaker: Matchmaker = Depends(get_matchmaker),
):
    """Join the oldest eligible waiting session, or open a new one and wait."""
    session = await matchmaker.request_pairing(user_id, req.pillar)
    return PairingResponse(
        session_id=session.id,
        status=session.status,
        pillar=session.pillar,
        partner_id=session.partner_of(user_id),
    )


@router.get("/{session_id}", response_model=SessionView)
async def get_session_view(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Poll the session. The partner's answer shows up once both have answered."""
    return await engine.get_session_view(session_id, user_id)


@router.post("/{session_id}/answers", response_model=SessionView)
async def submit_answer(
    session_id: str,
    req: AnswerRequest,
    user_id: str = Depends(get_current_user_id),
    engine: SessionEngine = Depends(get_session_engine),
):
    return await engine.submit_answer(session_id, user_id, req.card_index, req.option_index)


@router.post("/{session_id}/abandon", response_model=SessionView)
async def abandon_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: SessionEngine = Depends(get_session_engine),
):
    return await engine.abandon_session(session_id, user_id)
