"""Card deck Pydantic schemas."""

from pydantic import BaseModel, Field


class CardPrompt(BaseModel):
    """A single multiple-choice card. There is no correct option."""
    id: str
    question: str
    options: list[str] = Field(min_length=2)


class Deck(BaseModel):
    """All cards for one pillar, loaded from YAML."""
    pillar: str
    title: str
    cards: list[CardPrompt] = Field(min_length=1)


class DeckSummary(BaseModel):
    pillar: str
    title: str
    card_count: int
