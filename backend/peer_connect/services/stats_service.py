"""Stats aggregator - read-only rollup of a user's ledger and session history."""

from sqlalchemy import or_

from peer_connect.db.store import RecordStore
from peer_connect.models.session import PeerSession, SessionStatus
from peer_connect.models.streak import StreakRecord
from peer_connect.schemas.stats import UserStats
from peer_connect.services.trust_service import TrustRegistry


class StatsAggregator:
    def __init__(self, store: RecordStore, trust: TrustRegistry):
        self.store = store
        self.trust = trust

    async def get_stats(self, user_id: str) -> UserStats:
        """Derived totals for a user. Users with no history get zeros."""
        stats = UserStats(user_id=user_id)

        record = await self.store.get(StreakRecord, user_id)
        if record is not None:
            stats.current_streak = record.current_streak
            stats.longest_streak = record.longest_streak
            stats.total_sessions = record.total_sessions
            stats.total_points = record.total_points

        stats.peer_sessions_completed = await self.store.count(
            PeerSession,
            PeerSession.status == SessionStatus.COMPLETED.value,
            or_(PeerSession.participant_a == user_id, PeerSession.participant_b == user_id),
        )
        stats.trusted_peer_count = await self.trust.trusted_peer_count(user_id)
        return stats
