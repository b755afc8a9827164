"""Deck service - loads card decks from YAML and draws card sequences.

A card reference is ``"<pillar>:<card id>"``; sessions store references only and
resolve them to prompt text when a view is built.
"""

import logging
import random
from pathlib import Path

import yaml

from peer_connect.errors import InvalidOperation
from peer_connect.schemas.deck import CardPrompt, Deck, DeckSummary

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data" / "decks"
FALLBACK_PILLAR = "general"


def card_ref(pillar: str, card_id: str) -> str:
    return f"{pillar}:{card_id}"


class DeckService:
    def __init__(self, data_dir: Path = DATA_DIR, rng: random.Random | None = None):
        self.data_dir = data_dir
        self._rng = rng or random.Random()
        self._cache: dict[str, Deck] = {}

    def _read(self, pillar: str) -> Deck | None:
        file_path = self.data_dir / f"{pillar}.yaml"
        if not file_path.exists():
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        return Deck(**raw)

    def load_deck(self, pillar: str) -> Deck:
        """Load the deck for a pillar, falling back to the general deck."""
        if pillar in self._cache:
            return self._cache[pillar]

        deck = self._read(pillar)
        if deck is None:
            if pillar == FALLBACK_PILLAR:
                raise FileNotFoundError(f"Fallback deck missing in {self.data_dir}")
            logger.warning("No deck for pillar %r, using %r", pillar, FALLBACK_PILLAR)
            deck = self.load_deck(FALLBACK_PILLAR)

        self._cache[pillar] = deck
        return deck

    def draw(self, pillar: str, count: int) -> list[str]:
        """Pick ``count`` distinct cards in random order, as references."""
        if count < 1:
            raise InvalidOperation("A session needs at least one card")
        deck = self.load_deck(pillar)
        picked = self._rng.sample(deck.cards, k=min(count, len(deck.cards)))
        return [card_ref(deck.pillar, card.id) for card in picked]

    def get_card(self, ref: str) -> CardPrompt:
        pillar, sep, card_id = ref.partition(":")
        if not sep:
            raise InvalidOperation(f"Malformed card reference: {ref!r}")
        for card in self.load_deck(pillar).cards:
            if card.id == card_id:
                return card
        raise InvalidOperation(f"Unknown card: {ref!r}")

    def list_pillars(self) -> list[DeckSummary]:
        summaries = []
        for file_path in sorted(self.data_dir.glob("*.yaml")):
            deck = self.load_deck(file_path.stem)
            summaries.append(
                DeckSummary(pillar=deck.pillar, title=deck.title, card_count=len(deck.cards))
            )
        return summaries


deck_service = DeckService()
