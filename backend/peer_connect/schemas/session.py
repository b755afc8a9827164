"""Session-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from peer_connect.schemas.deck import CardPrompt


class PairingRequest(BaseModel):
    pillar: str | None = Field(default=None, min_length=1, max_length=50)


class PairingResponse(BaseModel):
    session_id: str
    status: str
    pillar: str
    partner_id: str | None = None


class AnswerRequest(BaseModel):
    card_index: int = Field(ge=0)
    option_index: int = Field(ge=0)


class ResolvedCard(BaseModel):
    """A card both participants have answered; both answers are visible."""
    card_index: int
    my_answer: int
    partner_answer: int
    matched: bool


class SessionView(BaseModel):
    """What one participant is allowed to see of a session right now.

    ``partner_answer`` stays None for the current card until the caller has
    answered too.
    """
    session_id: str
    status: str
    pillar: str
    partner_id: str | None
    card_index: int
    total_cards: int
    card: CardPrompt | None = None
    my_answer: int | None = None
    partner_answer: int | None = None
    revealed: bool = False
    waiting_for_partner: bool = False
    resolved_cards: list[ResolvedCard] = []
    created_at: datetime
    completed_at: datetime | None = None
    # Follow this id when a waiting session was folded into another one
    merged_into: str | None = None


class SweepResult(BaseModel):
    abandoned_waiting: int
    abandoned_active: int
    rescored: int
