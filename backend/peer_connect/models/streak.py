"""Streak ledger models - per-user streak/points totals and per-session entries."""

from datetime import date, datetime

from sqlalchemy import String, Integer, Date, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from peer_connect.core.clock import utcnow
from peer_connect.db.database import Base


class StreakRecord(Base):
    __tablename__ = "streaks"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    last_session_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class LedgerEntry(Base):
    """Marks that a completed session has been credited to one participant."""
    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_ledger_entries_session_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[str] = mapped_column(String(32), index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    points: Mapped[int] = mapped_column(Integer)
    streak_after: Mapped[int] = mapped_column(Integer)

    applied_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
