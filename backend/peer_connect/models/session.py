"""Peer session models - the paired session and the answers submitted in it."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from peer_connect.core.clock import utcnow
from peer_connect.db.database import Base


class SessionStatus(str, enum.Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


def _new_session_id() -> str:
    return uuid.uuid4().hex


class PeerSession(Base):
    __tablename__ = "peer_sessions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_session_id)
    participant_a: Mapped[str] = mapped_column(String(64), index=True)
    participant_b: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    pillar: Mapped[str] = mapped_column(String(50), index=True)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.WAITING.value, index=True)

    # Prompt references ("<pillar>:<card id>"), fixed at creation
    card_sequence: Mapped[list] = mapped_column(JSON, default=list)
    current_card_index: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    abandoned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Set when a waiting session was folded into another one during matchmaking
    merged_into: Mapped[str | None] = mapped_column(String(32), nullable=True)

    @property
    def participants(self) -> tuple[str, ...]:
        if self.participant_b is None:
            return (self.participant_a,)
        return (self.participant_a, self.participant_b)

    def partner_of(self, user_id: str) -> str | None:
        """The other participant, or None while the session is still waiting."""
        if user_id == self.participant_a:
            return self.participant_b
        return self.participant_a

    @property
    def is_last_card(self) -> bool:
        return self.current_card_index >= len(self.card_sequence) - 1


class CardAnswer(Base):
    """One participant's answer to one card. Never overwritten."""
    __tablename__ = "card_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "card_index", "user_id", name="uq_card_answers_once"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[str] = mapped_column(String(32), index=True)
    card_index: Mapped[int] = mapped_column(Integer)
    user_id: Mapped[str] = mapped_column(String(64))
    selected_option_index: Mapped[int] = mapped_column(Integer)

    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
