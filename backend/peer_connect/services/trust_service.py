"""Trust registry - which peers each user has opted into being paired with."""

import logging

from sqlalchemy import or_

from peer_connect.db.store import RecordStore
from peer_connect.errors import InvalidOperation
from peer_connect.models.trust import TrustRelationship

logger = logging.getLogger(__name__)


class TrustRegistry:
    def __init__(self, store: RecordStore):
        self.store = store

    async def add_trust(self, owner_id: str, peer_id: str) -> TrustRelationship:
        """Trust ``peer_id`` as a pairing partner. Adding twice is a no-op."""
        if not peer_id:
            raise InvalidOperation("peer_id is required")
        if owner_id == peer_id:
            raise InvalidOperation("Users cannot trust themselves")

        record, created = await self.store.insert_if_absent(
            TrustRelationship(owner_id=owner_id, peer_id=peer_id),
            TrustRelationship.owner_id == owner_id,
            TrustRelationship.peer_id == peer_id,
        )
        if created:
            logger.info("User %s now trusts %s", owner_id, peer_id)
        return record

    async def remove_trust(self, owner_id: str, peer_id: str) -> bool:
        """Drop the relationship if present. Returns whether anything was removed."""
        removed = await self.store.delete(
            TrustRelationship,
            TrustRelationship.owner_id == owner_id,
            TrustRelationship.peer_id == peer_id,
        )
        return removed > 0

    async def list_trusted_peers(self, owner_id: str) -> list[str]:
        records = await self.store.find_all(
            TrustRelationship, TrustRelationship.owner_id == owner_id
        )
        return [r.peer_id for r in records]

    async def trusted_peer_count(self, owner_id: str) -> int:
        return await self.store.count(TrustRelationship, TrustRelationship.owner_id == owner_id)

    async def eligible_partners(self, user_id: str) -> set[str]:
        """Users ``user_id`` may be paired with: trust in either direction is enough."""
        records = await self.store.find_all(
            TrustRelationship,
            or_(TrustRelationship.owner_id == user_id, TrustRelationship.peer_id == user_id),
        )
        partners = set()
        for r in records:
            partners.add(r.peer_id if r.owner_id == user_id else r.owner_id)
        return partners
