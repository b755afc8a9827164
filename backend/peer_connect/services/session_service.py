"""Session state machine - blind answers, reveal, advance, completion, abandonment.

States move forward only::

    waiting -> active -> completed
    waiting -> abandoned
    active  -> abandoned

A card is resolved once both participants have an answer row for it; that is
derived from the rows themselves, never stored as a flag. Whichever request
wins the compare-and-set on the card index (or on the status, for the last
card) performs the advance; everyone else sees the already-advanced session.
"""

import logging
from datetime import timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from peer_connect.config import Settings
from peer_connect.core.clock import Clock, utcnow
from peer_connect.core.retry import retry_on_conflict
from peer_connect.db.store import RecordStore
from peer_connect.errors import (
    Conflict,
    InvalidOperation,
    NotFound,
    PeerConnectError,
    StaleSubmission,
)
from peer_connect.models.session import CardAnswer, PeerSession, SessionStatus
from peer_connect.schemas.session import ResolvedCard, SessionView, SweepResult
from peer_connect.services.deck_service import DeckService
from peer_connect.services.event_bus import SessionEventBus
from peer_connect.services.scoring_service import ScoringEngine

logger = logging.getLogger(__name__)

WAITING = SessionStatus.WAITING.value
ACTIVE = SessionStatus.ACTIVE.value
COMPLETED = SessionStatus.COMPLETED.value
ABANDONED = SessionStatus.ABANDONED.value


class SessionEngine:
    def __init__(
        self,
        store: RecordStore,
        decks: DeckService,
        scoring: ScoringEngine,
        settings: Settings,
        bus: SessionEventBus | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.decks = decks
        self.scoring = scoring
        self.settings = settings
        self.bus = bus or SessionEventBus(None)
        self.clock = clock

    async def _load(self, session_id: str) -> PeerSession:
        session = await self.store.get(PeerSession, session_id)
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        return session

    @staticmethod
    def _require_participant(session: PeerSession, user_id: str) -> None:
        if user_id not in session.participants:
            raise InvalidOperation(f"User {user_id} is not part of session {session.id}")

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def submit_answer(
        self, session_id: str, user_id: str, card_index: int, option_index: int
    ) -> SessionView:
        """Record one participant's answer to the current card.

        Re-sending an answer that was already stored (a client retry) returns
        the current view without changing the stored option.
        """
        session = await self._load(session_id)
        self._require_participant(session, user_id)

        existing = await self._find_answer(session_id, card_index, user_id)
        if existing is not None:
            logger.debug("Duplicate answer from %s for %s card %d", user_id, session_id, card_index)
            await self._resolve_if_ready(session_id, card_index)
            return await self.get_session_view(session_id, user_id)

        if session.status != ACTIVE:
            raise InvalidOperation(f"Session {session_id} is {session.status}")
        if card_index != session.current_card_index:
            raise StaleSubmission(
                f"Card {card_index} is not the current card ({session.current_card_index})"
            )
        card = self.decks.get_card(session.card_sequence[card_index])
        if not 0 <= option_index < len(card.options):
            raise InvalidOperation(
                f"Option {option_index} out of range for a card with {len(card.options)} options"
            )

        _, created = await self.store.insert_if_absent(
            CardAnswer(
                session_id=session_id,
                card_index=card_index,
                user_id=user_id,
                selected_option_index=option_index,
                submitted_at=self.clock(),
            ),
            CardAnswer.session_id == session_id,
            CardAnswer.card_index == card_index,
            CardAnswer.user_id == user_id,
        )
        if created:
            # The option itself stays private until the card resolves
            await self.bus.publish(session_id, "answer_submitted", user_id=user_id, card_index=card_index)

        await self._resolve_if_ready(session_id, card_index)
        return await self.get_session_view(session_id, user_id)

    async def _find_answer(self, session_id: str, card_index: int, user_id: str) -> CardAnswer | None:
        return await self.store.find_first(
            CardAnswer,
            CardAnswer.session_id == session_id,
            CardAnswer.card_index == card_index,
            CardAnswer.user_id == user_id,
        )

    async def _resolve_if_ready(self, session_id: str, card_index: int) -> None:
        answered = await self.store.count(
            CardAnswer, CardAnswer.session_id == session_id, CardAnswer.card_index == card_index
        )
        if answered < 2:
            return

        session = await self._load(session_id)
        if session.status != ACTIVE or session.current_card_index != card_index:
            return

        if card_index + 1 < len(session.card_sequence):
            advanced = await self.store.compare_and_set(
                PeerSession,
                session_id,
                "current_card_index",
                card_index,
                card_index + 1,
                guards=(PeerSession.status == ACTIVE,),
            )
            if advanced:
                logger.info("Session %s resolved card %d", session_id, card_index)
                await self.bus.publish(session_id, "card_resolved", card_index=card_index)
            return

        completed = await self.store.compare_and_set(
            PeerSession,
            session_id,
            "status",
            ACTIVE,
            COMPLETED,
            guards=(PeerSession.current_card_index == card_index,),
            completed_at=self.clock(),
        )
        if not completed:
            return

        logger.info("Session %s completed", session_id)
        await self.bus.publish(session_id, "card_resolved", card_index=card_index)
        try:
            await self.scoring.complete_session(session_id)
        except (PeerConnectError, SQLAlchemyError):
            # The session stays completed; the sweep re-applies scoring
            logger.exception("Scoring failed for completed session %s", session_id)
        await self.bus.publish(session_id, "session_completed")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_session_view(self, session_id: str, user_id: str) -> SessionView:
        """The caller's view of the session. Never writes anything."""
        session = await self._load(session_id)
        self._require_participant(session, user_id)
        partner_id = session.partner_of(user_id)

        answers = await self.store.find_all(CardAnswer, CardAnswer.session_id == session_id)
        by_card: dict[int, dict[str, int]] = {}
        for answer in answers:
            by_card.setdefault(answer.card_index, {})[answer.user_id] = answer.selected_option_index

        resolved = []
        for index in sorted(by_card):
            picks = by_card[index]
            if user_id in picks and partner_id in picks:
                resolved.append(
                    ResolvedCard(
                        card_index=index,
                        my_answer=picks[user_id],
                        partner_answer=picks[partner_id],
                        matched=picks[user_id] == picks[partner_id],
                    )
                )

        current = session.current_card_index
        picks = by_card.get(current, {})
        mine = picks.get(user_id)
        theirs = picks.get(partner_id) if partner_id else None
        revealed = mine is not None and theirs is not None

        card = None
        if session.status in (ACTIVE, COMPLETED) and current < len(session.card_sequence):
            card = self.decks.get_card(session.card_sequence[current])

        return SessionView(
            session_id=session.id,
            status=session.status,
            pillar=session.pillar,
            partner_id=partner_id,
            card_index=current,
            total_cards=len(session.card_sequence),
            card=card,
            my_answer=mine,
            partner_answer=theirs if revealed else None,
            revealed=revealed,
            waiting_for_partner=session.status == ACTIVE and mine is not None and theirs is None,
            resolved_cards=resolved,
            created_at=session.created_at,
            completed_at=session.completed_at,
            merged_into=session.merged_into,
        )

    # ------------------------------------------------------------------
    # Abandonment
    # ------------------------------------------------------------------

    async def abandon_session(self, session_id: str, user_id: str) -> SessionView:
        """Leave a session. No scoring is applied and no further answers are accepted."""
        await retry_on_conflict(
            lambda: self._abandon_once(session_id, user_id),
            self.settings.CONFLICT_RETRY_LIMIT,
        )
        return await self.get_session_view(session_id, user_id)

    async def _abandon_once(self, session_id: str, user_id: str) -> None:
        session = await self._load(session_id)
        self._require_participant(session, user_id)

        if session.status == ABANDONED:
            return
        if session.status == COMPLETED:
            raise InvalidOperation(f"Session {session_id} is already completed")

        abandoned = await self.store.compare_and_set(
            PeerSession, session_id, "status", session.status, ABANDONED, abandoned_at=self.clock()
        )
        if not abandoned:
            raise Conflict(f"Session {session_id} changed while abandoning")

        logger.info("User %s abandoned session %s (was %s)", user_id, session_id, session.status)
        await self.bus.publish(session_id, "session_abandoned", user_id=user_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def sweep_expired(self) -> SweepResult:
        """Abandon sessions past their deadline and re-apply missing scoring.

        Safe to run while answers are being submitted: each abandon is a
        conditional update that loses cleanly to a concurrent advance.
        """
        now = self.clock()

        waiting_cutoff = now - timedelta(seconds=self.settings.WAITING_TIMEOUT_SECONDS)
        stale_waiting = await self.store.find_all(
            PeerSession,
            PeerSession.status == WAITING,
            PeerSession.created_at < waiting_cutoff,
        )
        abandoned_waiting = 0
        for session in stale_waiting:
            if await self.store.compare_and_set(
                PeerSession, session.id, "status", WAITING, ABANDONED, abandoned_at=now
            ):
                abandoned_waiting += 1
                await self.bus.publish(session.id, "session_abandoned", reason="timeout")

        active_cutoff = now - timedelta(seconds=self.settings.ACTIVE_TIMEOUT_SECONDS)
        last_answer = (
            select(func.max(CardAnswer.submitted_at))
            .where(CardAnswer.session_id == PeerSession.id)
            .scalar_subquery()
        )
        stale_active = await self.store.find_all(
            PeerSession,
            PeerSession.status == ACTIVE,
            PeerSession.matched_at < active_cutoff,
            or_(last_answer.is_(None), last_answer < active_cutoff),
        )
        abandoned_active = 0
        for session in stale_active:
            if await self.store.compare_and_set(
                PeerSession,
                session.id,
                "status",
                ACTIVE,
                ABANDONED,
                guards=(PeerSession.current_card_index == session.current_card_index,),
                abandoned_at=now,
            ):
                abandoned_active += 1
                await self.bus.publish(session.id, "session_abandoned", reason="timeout")

        rescored = await self.scoring.retry_pending()

        if abandoned_waiting or abandoned_active or rescored:
            logger.info(
                "Sweep abandoned %d waiting and %d active sessions, rescored %d",
                abandoned_waiting, abandoned_active, rescored,
            )
        return SweepResult(
            abandoned_waiting=abandoned_waiting,
            abandoned_active=abandoned_active,
            rescored=rescored,
        )
