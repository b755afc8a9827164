"""Tests for the per-user stats rollup."""


async def test_unknown_user_gets_zeros(stats):
    result = await stats.get_stats("nobody")

    assert result.user_id == "nobody"
    assert result.current_streak == 0
    assert result.longest_streak == 0
    assert result.total_sessions == 0
    assert result.total_points == 0
    assert result.peer_sessions_completed == 0
    assert result.trusted_peer_count == 0


async def test_stats_after_completed_session(stats, engine, paired, trust):
    await trust.add_trust("alice", "bob")
    await trust.add_trust("alice", "carol")
    for index in range(3):
        await engine.submit_answer(paired.id, "alice", index, 1)
        await engine.submit_answer(paired.id, "bob", index, 1 if index else 0)

    alice = await stats.get_stats("alice")
    bob = await stats.get_stats("bob")

    assert alice.total_points == 3 * 10 + 2 * 5
    assert alice.current_streak == 1
    assert alice.longest_streak == 1
    assert alice.total_sessions == 1
    assert alice.peer_sessions_completed == 1
    assert alice.trusted_peer_count == 2
    # Counted from either seat of the session
    assert bob.peer_sessions_completed == 1
    assert bob.trusted_peer_count == 0


async def test_abandoned_sessions_are_not_counted(stats, engine, paired):
    await engine.abandon_session(paired.id, "alice")

    result = await stats.get_stats("alice")

    assert result.peer_sessions_completed == 0
    assert result.total_sessions == 0
