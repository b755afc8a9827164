"""Database models package."""

from peer_connect.models.trust import TrustRelationship
from peer_connect.models.session import PeerSession, CardAnswer, SessionStatus
from peer_connect.models.streak import StreakRecord, LedgerEntry

__all__ = [
    "TrustRelationship",
    "PeerSession",
    "CardAnswer",
    "SessionStatus",
    "StreakRecord",
    "LedgerEntry",
]
