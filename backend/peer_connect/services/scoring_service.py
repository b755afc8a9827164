"""Streak & scoring engine - credits both participants when a session completes.

Each participant is credited in a separate unit of work guarded by a unique
ledger entry, so a failure on one side never blocks or undoes the other and a
retry never double-counts.
"""

import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from peer_connect.config import Settings
from peer_connect.core.clock import Clock, utcnow
from peer_connect.db.store import RecordStore
from peer_connect.errors import InvalidOperation, NotFound
from peer_connect.models.session import CardAnswer, PeerSession, SessionStatus
from peer_connect.models.streak import LedgerEntry, StreakRecord

logger = logging.getLogger(__name__)


def next_streak(current_streak: int, last_session_date: date | None, today: date) -> int:
    """Streak after completing a session on ``today``."""
    if last_session_date is None:
        return 1
    gap = (today - last_session_date).days
    if gap <= 0:
        # Same day, or a late credit for a day already counted
        return current_streak
    if gap == 1:
        return current_streak + 1
    return 1


def count_matching_cards(answers: list[CardAnswer]) -> int:
    """Cards where both participants picked the same option."""
    by_card: dict[int, list[int]] = {}
    for answer in answers:
        by_card.setdefault(answer.card_index, []).append(answer.selected_option_index)
    return sum(1 for picks in by_card.values() if len(picks) == 2 and picks[0] == picks[1])


class ScoringEngine:
    def __init__(self, store: RecordStore, settings: Settings, clock: Clock = utcnow):
        self.store = store
        self.settings = settings
        self.clock = clock

    def points_for_session(self, card_count: int, matched_cards: int) -> int:
        return card_count * self.settings.CARD_POINTS + matched_cards * self.settings.MATCH_BONUS

    async def complete_session(self, session_id: str) -> dict[str, LedgerEntry | None]:
        """Credit every participant of a completed session.

        Returns the new ledger entry per participant; None marks a participant
        that was already credited or whose write kept failing (left for the sweep).
        """
        session = await self.store.get(PeerSession, session_id)
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        if session.status != SessionStatus.COMPLETED.value:
            raise InvalidOperation(f"Session {session_id} is {session.status}, not completed")

        answers = await self.store.find_all(CardAnswer, CardAnswer.session_id == session_id)
        matched = count_matching_cards(answers)
        points = self.points_for_session(len(session.card_sequence), matched)
        # Streak days follow when the session finished, not when scoring ran
        day = (session.completed_at or self.clock()).date()

        results = {}
        for user_id in session.participants:
            results[user_id] = await self._credit_with_retry(session_id, user_id, points, day)
        return results

    async def _credit_with_retry(
        self, session_id: str, user_id: str, points: int, today: date
    ) -> LedgerEntry | None:
        attempts = self.settings.SCORING_RETRY_LIMIT + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.credit_participant(session_id, user_id, points, today)
            except SQLAlchemyError:
                logger.warning(
                    "Ledger write for user %s, session %s failed (attempt %d/%d)",
                    user_id, session_id, attempt, attempts, exc_info=True,
                )
        logger.error("Giving up crediting user %s for session %s until next sweep", user_id, session_id)
        return None

    async def _already_credited(self, session_id: str, user_id: str) -> bool:
        count = await self.store.count(
            LedgerEntry, LedgerEntry.session_id == session_id, LedgerEntry.user_id == user_id
        )
        return count > 0

    async def credit_participant(
        self, session_id: str, user_id: str, points: int, today: date
    ) -> LedgerEntry | None:
        """Apply one session to one user's streak record. No-op if already applied."""
        try:
            async with self.store.unit_of_work() as db:
                existing = await db.execute(
                    select(LedgerEntry.id).where(
                        LedgerEntry.session_id == session_id, LedgerEntry.user_id == user_id
                    )
                )
                if existing.first() is not None:
                    return None

                record = await db.get(StreakRecord, user_id)
                if record is None:
                    record = StreakRecord(
                        user_id=user_id,
                        current_streak=0,
                        longest_streak=0,
                        total_sessions=0,
                        total_points=0,
                    )
                    db.add(record)

                record.current_streak = next_streak(
                    record.current_streak, record.last_session_date, today
                )
                record.longest_streak = max(record.longest_streak, record.current_streak)
                record.total_sessions += 1
                record.total_points += points
                if record.last_session_date is None or today > record.last_session_date:
                    record.last_session_date = today

                entry = LedgerEntry(
                    session_id=session_id,
                    user_id=user_id,
                    points=points,
                    streak_after=record.current_streak,
                )
                db.add(entry)
        except IntegrityError:
            # A concurrent credit for the same pair won; anything else is a real failure
            if await self._already_credited(session_id, user_id):
                return None
            raise

        logger.info(
            "Credited user %s: +%d points, streak %d (session %s)",
            user_id, points, entry.streak_after, session_id,
        )
        return entry

    async def retry_pending(self) -> int:
        """Re-credit completed sessions that are missing ledger entries.

        Returns how many sessions gained at least one ledger entry.
        """
        credited = (
            select(func.count(LedgerEntry.id))
            .where(LedgerEntry.session_id == PeerSession.id)
            .scalar_subquery()
        )
        pending = await self.store.find_all(
            PeerSession,
            PeerSession.status == SessionStatus.COMPLETED.value,
            credited < 2,
        )
        rescored = 0
        for session in pending:
            logger.info("Retrying scoring for session %s", session.id)
            results = await self.complete_session(session.id)
            if any(entry is not None for entry in results.values()):
                rescored += 1
        return rescored
