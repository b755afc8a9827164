"""Trust relationship model - directed opt-in to be paired with a peer."""

from datetime import datetime

from sqlalchemy import String, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from peer_connect.core.clock import utcnow
from peer_connect.db.database import Base


class TrustRelationship(Base):
    __tablename__ = "trusted_peers"
    __table_args__ = (UniqueConstraint("owner_id", "peer_id", name="uq_trusted_peers_owner_peer"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    peer_id: Mapped[str] = mapped_column(String(64), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
