"""Tests for the trust registry."""

import pytest

from peer_connect.errors import InvalidOperation


async def test_self_trust_rejected(trust):
    with pytest.raises(InvalidOperation):
        await trust.add_trust("alice", "alice")


async def test_add_trust_is_idempotent(trust):
    first = await trust.add_trust("alice", "bob")
    second = await trust.add_trust("alice", "bob")

    assert first.id == second.id
    assert await trust.list_trusted_peers("alice") == ["bob"]
    assert await trust.trusted_peer_count("alice") == 1


async def test_trust_is_directed(trust):
    await trust.add_trust("alice", "bob")

    assert await trust.list_trusted_peers("bob") == []
    assert await trust.trusted_peer_count("bob") == 0


async def test_remove_trust(trust):
    await trust.add_trust("alice", "bob")
    await trust.add_trust("alice", "carol")

    assert await trust.remove_trust("alice", "bob") is True
    assert await trust.list_trusted_peers("alice") == ["carol"]


async def test_remove_absent_trust_is_noop(trust):
    assert await trust.remove_trust("alice", "nobody") is False


async def test_eligible_partners_either_direction(trust):
    await trust.add_trust("alice", "bob")  # alice -> bob
    await trust.add_trust("carol", "alice")  # carol -> alice
    await trust.add_trust("dave", "erin")  # unrelated

    assert await trust.eligible_partners("alice") == {"bob", "carol"}
    assert await trust.eligible_partners("bob") == {"alice"}
    assert await trust.eligible_partners("zed") == set()
