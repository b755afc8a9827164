"""Matchmaker - pairs a requester with the longest-waiting eligible peer.

The waiting pool is just the ``waiting`` rows in the store, ordered by
(created_at, id). Joining a waiting session is a compare-and-set of its status,
so of several requesters racing for one session exactly one gets it.
"""

import logging

from peer_connect.config import Settings
from peer_connect.core.clock import Clock, utcnow
from peer_connect.core.retry import retry_on_conflict
from peer_connect.db.store import RecordStore
from peer_connect.errors import Conflict
from peer_connect.models.session import PeerSession, SessionStatus
from peer_connect.services.deck_service import DeckService
from peer_connect.services.event_bus import SessionEventBus
from peer_connect.services.trust_service import TrustRegistry

logger = logging.getLogger(__name__)

WAITING = SessionStatus.WAITING.value
ACTIVE = SessionStatus.ACTIVE.value
ABANDONED = SessionStatus.ABANDONED.value


def _precedes(a: PeerSession, b: PeerSession) -> bool:
    """Queue order: creation time, then id."""
    return (a.created_at, a.id) < (b.created_at, b.id)


class Matchmaker:
    def __init__(
        self,
        store: RecordStore,
        trust: TrustRegistry,
        decks: DeckService,
        settings: Settings,
        bus: SessionEventBus | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.trust = trust
        self.decks = decks
        self.settings = settings
        self.bus = bus or SessionEventBus(None)
        self.clock = clock

    async def request_pairing(self, requester_id: str, pillar: str | None = None) -> PeerSession:
        """Join the oldest eligible waiting session, or wait in a new one."""
        pillar = pillar or self.settings.DEFAULT_PILLAR
        return await retry_on_conflict(
            lambda: self._pair_once(requester_id, pillar),
            self.settings.CONFLICT_RETRY_LIMIT,
        )

    async def _eligible_criteria(self, requester_id: str) -> list | None:
        """Extra filters on who may be joined; None means nobody is eligible."""
        if self.settings.PAIRING_MODE == "open":
            return []
        partners = await self.trust.eligible_partners(requester_id)
        if not partners:
            return None
        return [PeerSession.participant_a.in_(partners)]

    async def _pair_once(self, requester_id: str, pillar: str) -> PeerSession:
        eligible = await self._eligible_criteria(requester_id)
        joinable = [
            PeerSession.status == WAITING,
            PeerSession.pillar == pillar,
            PeerSession.participant_a != requester_id,
        ]

        own = await self.store.find_first(
            PeerSession,
            PeerSession.status == WAITING,
            PeerSession.participant_a == requester_id,
            PeerSession.pillar == pillar,
        )
        if own is None:
            if eligible is not None:
                candidate = await self.store.find_first(PeerSession, *joinable, *eligible)
                if candidate is not None:
                    return await self._join(candidate, requester_id)
            own = await self._open_waiting(requester_id, pillar)

        if eligible is None:
            return own

        # Another eligible requester may have opened a waiting session at the
        # same time. Both sides fold the later session into the older one using
        # the same two compare-and-sets, so whichever side notices first does it.
        other = await self.store.find_first(
            PeerSession, *joinable, *eligible, PeerSession.id != own.id
        )
        if other is None:
            return await self._current(own.id, requester_id)

        if _precedes(other, own):
            if not await self._withdraw(own, into=other):
                # Ours was joined, or already folded into another session
                return await self._current(own.id, requester_id)
            return await self._join(other, requester_id)

        if await self._withdraw(other, into=own):
            try:
                await self._join(own, other.participant_a)
            except Conflict:
                # The pulled requester finished the join itself, or a third requester got in first
                logger.info("Pull of %s into %s was completed elsewhere", other.id, own.id)
        return await self._current(own.id, requester_id)

    async def _current(self, session_id: str, requester_id: str) -> PeerSession:
        """Re-read a session, following it if it was folded into another one.

        A fold that is still waiting for its join is finished here; a target
        that was taken by someone else sends the requester back to the pool.
        """
        session = await self.store.get(PeerSession, session_id)
        if session.merged_into is None:
            return session

        target = await self.store.get(PeerSession, session.merged_into)
        if requester_id in target.participants and target.status != ABANDONED:
            return target
        if target.status == WAITING:
            return await self._join(target, requester_id)
        raise Conflict(f"Session {target.id} was taken before {requester_id} could join")

    async def _withdraw(self, session: PeerSession, into: PeerSession) -> bool:
        withdrawn = await self.store.compare_and_set(
            PeerSession,
            session.id,
            "status",
            WAITING,
            ABANDONED,
            abandoned_at=self.clock(),
            merged_into=into.id,
        )
        if withdrawn:
            logger.info("Folded waiting session %s into %s", session.id, into.id)
            await self.bus.publish(session.id, "session_merged", merged_into=into.id)
        return withdrawn

    async def _open_waiting(self, requester_id: str, pillar: str) -> PeerSession:
        session = PeerSession(
            participant_a=requester_id,
            pillar=pillar,
            status=WAITING,
            card_sequence=self.decks.draw(pillar, self.settings.CARDS_PER_SESSION),
            current_card_index=0,
            created_at=self.clock(),
        )
        session = await self.store.put(session)
        logger.info("User %s waiting in session %s (%s)", requester_id, session.id, pillar)
        return session

    async def _join(self, candidate: PeerSession, requester_id: str) -> PeerSession:
        joined = await self.store.compare_and_set(
            PeerSession,
            candidate.id,
            "status",
            WAITING,
            ACTIVE,
            participant_b=requester_id,
            current_card_index=0,
            matched_at=self.clock(),
        )
        if not joined:
            raise Conflict(f"Session {candidate.id} was taken by another requester")

        session = await self.store.get(PeerSession, candidate.id)
        logger.info(
            "Matched %s with %s in session %s", requester_id, session.participant_a, session.id
        )
        await self.bus.publish(session.id, "matched", partner_id=requester_id)
        return session
