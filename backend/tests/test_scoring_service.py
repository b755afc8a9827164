"""Tests for streak rules and idempotent per-participant crediting."""

from datetime import date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from peer_connect.errors import InvalidOperation, NotFound
from peer_connect.models.session import CardAnswer, PeerSession
from peer_connect.models.streak import LedgerEntry, StreakRecord
from peer_connect.services.scoring_service import count_matching_cards, next_streak


async def _completed_session(store, clock, picks_a, picks_b, a="alice", b="bob") -> PeerSession:
    """Store a finished session where each side picked the given options in order."""
    session = await store.put(PeerSession(
        participant_a=a, participant_b=b, pillar="general", status="completed",
        card_sequence=[f"general:card{i}" for i in range(len(picks_a))],
        current_card_index=len(picks_a) - 1,
        created_at=clock(), matched_at=clock(), completed_at=clock(),
    ))
    for index, (pick_a, pick_b) in enumerate(zip(picks_a, picks_b)):
        await store.put(CardAnswer(
            session_id=session.id, card_index=index, user_id=a,
            selected_option_index=pick_a, submitted_at=clock(),
        ))
        await store.put(CardAnswer(
            session_id=session.id, card_index=index, user_id=b,
            selected_option_index=pick_b, submitted_at=clock(),
        ))
    return session


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "current, last, today, expected",
    [
        (0, None, date(2024, 1, 10), 1),
        (4, date(2024, 1, 10), date(2024, 1, 11), 5),
        (4, date(2024, 1, 10), date(2024, 1, 13), 1),
        (4, date(2024, 1, 10), date(2024, 1, 10), 4),
        (2, date(2023, 12, 31), date(2024, 1, 1), 3),
        (3, date(2024, 1, 12), date(2024, 1, 11), 3),
    ],
)
def test_next_streak(current, last, today, expected):
    assert next_streak(current, last, today) == expected


def test_count_matching_cards_ignores_half_answered_cards():
    answers = [
        CardAnswer(session_id="s", card_index=0, user_id="a", selected_option_index=1),
        CardAnswer(session_id="s", card_index=0, user_id="b", selected_option_index=1),
        CardAnswer(session_id="s", card_index=1, user_id="a", selected_option_index=0),
        CardAnswer(session_id="s", card_index=1, user_id="b", selected_option_index=2),
        CardAnswer(session_id="s", card_index=2, user_id="a", selected_option_index=3),
    ]
    assert count_matching_cards(answers) == 1


def test_points_for_session(scoring):
    assert scoring.points_for_session(5, 3) == 5 * 10 + 3 * 5
    assert scoring.points_for_session(3, 0) == 30


# ---------------------------------------------------------------------------
# Crediting
# ---------------------------------------------------------------------------

async def test_complete_session_credits_both(scoring, store, clock):
    session = await _completed_session(store, clock, [0, 1, 2], [0, 3, 2])

    results = await scoring.complete_session(session.id)

    assert set(results) == {"alice", "bob"}
    for user_id in ("alice", "bob"):
        record = await store.get(StreakRecord, user_id)
        assert record.total_points == 3 * 10 + 2 * 5
        assert record.total_sessions == 1
        assert record.current_streak == 1
        assert record.longest_streak == 1
        assert record.last_session_date == date(2024, 1, 10)
        assert results[user_id].points == 40


async def test_repeat_completion_is_idempotent(scoring, store, clock):
    session = await _completed_session(store, clock, [0, 0, 0], [0, 0, 0])

    await scoring.complete_session(session.id)
    again = await scoring.complete_session(session.id)

    assert again == {"alice": None, "bob": None}
    record = await store.get(StreakRecord, "alice")
    assert record.total_sessions == 1
    assert record.total_points == 45
    assert await store.count(LedgerEntry, LedgerEntry.session_id == session.id) == 2


async def test_two_sessions_same_day_keep_streak(scoring, store, clock):
    first = await _completed_session(store, clock, [0, 0, 0], [1, 1, 1])
    second = await _completed_session(store, clock, [0, 0, 0], [1, 1, 1])

    await scoring.complete_session(first.id)
    await scoring.complete_session(second.id)

    record = await store.get(StreakRecord, "alice")
    assert record.current_streak == 1
    assert record.total_sessions == 2
    assert record.total_points == 60


async def test_consecutive_days_then_gap(scoring, store, clock):
    for _ in range(3):
        session = await _completed_session(store, clock, [0, 0, 0], [1, 1, 1])
        await scoring.complete_session(session.id)
        clock.advance(days=1)

    record = await store.get(StreakRecord, "alice")
    assert record.current_streak == 3
    assert record.longest_streak == 3

    clock.advance(days=2)
    session = await _completed_session(store, clock, [0, 0, 0], [1, 1, 1])
    await scoring.complete_session(session.id)

    record = await store.get(StreakRecord, "alice")
    assert record.current_streak == 1
    assert record.longest_streak == 3


async def test_unknown_session_raises(scoring):
    with pytest.raises(NotFound):
        await scoring.complete_session("missing")


async def test_incomplete_session_is_not_scored(scoring, store, clock):
    session = await store.put(PeerSession(
        participant_a="alice", participant_b="bob", pillar="general", status="active",
        card_sequence=["general:stress"], current_card_index=0, created_at=clock(),
    ))
    with pytest.raises(InvalidOperation):
        await scoring.complete_session(session.id)


async def test_failure_for_one_participant_does_not_block_other(scoring, store, clock, monkeypatch):
    session = await _completed_session(store, clock, [0, 0, 0], [0, 0, 0])
    real_credit = scoring.credit_participant

    async def flaky_credit(session_id, user_id, points, today):
        if user_id == "bob":
            raise OperationalError("UPDATE streak_records", {}, Exception("database is locked"))
        return await real_credit(session_id, user_id, points, today)

    monkeypatch.setattr(scoring, "credit_participant", flaky_credit)
    results = await scoring.complete_session(session.id)

    assert results["alice"] is not None
    assert results["bob"] is None
    assert await store.get(StreakRecord, "bob") is None

    monkeypatch.setattr(scoring, "credit_participant", real_credit)
    assert await scoring.retry_pending() == 1

    alice = await store.get(StreakRecord, "alice")
    bob = await store.get(StreakRecord, "bob")
    assert alice.total_sessions == 1
    assert bob.total_sessions == 1
    assert bob.total_points == 45
    # Nothing left to retry
    assert await scoring.retry_pending() == 0


async def test_retry_pending_skips_unfinished_sessions(scoring, store, clock):
    await store.put(PeerSession(
        participant_a="alice", pillar="general", status="waiting",
        card_sequence=["general:stress"], current_card_index=0, created_at=clock(),
    ))
    await store.put(PeerSession(
        participant_a="carol", participant_b="dave", pillar="general", status="abandoned",
        card_sequence=["general:stress"], current_card_index=0, created_at=clock(),
    ))

    assert await scoring.retry_pending() == 0
    assert await store.count(StreakRecord) == 0


def _credit_failing(scoring, monkeypatch):
    async def ledger_down(session_id, user_id, points, today):
        raise OperationalError("INSERT INTO ledger_entries", {}, Exception("database is locked"))

    monkeypatch.setattr(scoring, "credit_participant", ledger_down)


async def test_late_rescore_uses_completion_day(scoring, store, clock, monkeypatch):
    await store.put(StreakRecord(
        user_id="alice", current_streak=4, longest_streak=4, total_sessions=4,
        total_points=120, last_session_date=date(2024, 1, 10),
    ))
    clock.set(datetime(2024, 1, 11, 20, 0))
    session = await _completed_session(store, clock, [0, 0, 0], [0, 0, 0])
    _credit_failing(scoring, monkeypatch)
    await scoring.complete_session(session.id)
    monkeypatch.undo()

    clock.set(datetime(2024, 1, 13, 8, 0))
    assert await scoring.retry_pending() == 1

    record = await store.get(StreakRecord, "alice")
    assert record.current_streak == 5
    assert record.longest_streak == 5
    assert record.last_session_date == date(2024, 1, 11)


async def test_late_rescore_of_older_day_keeps_latest_date(scoring, store, clock):
    await store.put(StreakRecord(
        user_id="alice", current_streak=2, longest_streak=2, total_sessions=2,
        total_points=60, last_session_date=date(2024, 1, 12),
    ))
    clock.set(datetime(2024, 1, 11, 20, 0))
    session = await _completed_session(store, clock, [0, 0, 0], [1, 1, 1])

    await scoring.complete_session(session.id)

    record = await store.get(StreakRecord, "alice")
    assert record.current_streak == 2
    assert record.total_sessions == 3
    assert record.last_session_date == date(2024, 1, 12)


async def test_retry_pending_counts_only_sessions_that_were_credited(scoring, store, clock, monkeypatch):
    session = await _completed_session(store, clock, [0, 0, 0], [0, 0, 0])
    _credit_failing(scoring, monkeypatch)

    await scoring.complete_session(session.id)
    assert await scoring.retry_pending() == 0

    monkeypatch.undo()
    assert await scoring.retry_pending() == 1
    assert await store.count(LedgerEntry, LedgerEntry.session_id == session.id) == 2
