"""Deck endpoints - list the pillars players can pair on."""

from fastapi import APIRouter

from peer_connect.schemas.deck import DeckSummary
from peer_connect.services.deck_service import deck_service

router = APIRouter()


@router.get("/", response_model=list[DeckSummary])
async def list_decks():
    return deck_service.list_pillars()
