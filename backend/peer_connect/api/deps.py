"""FastAPI dependencies - caller identity and per-request engine wiring."""

from fastapi import Depends, Header

from peer_connect.config import Settings, get_settings
from peer_connect.db.redis import get_redis_client
from peer_connect.db.store import RecordStore, get_store
from peer_connect.errors import Unauthenticated
from peer_connect.services.deck_service import deck_service
from peer_connect.services.event_bus import SessionEventBus
from peer_connect.services.matchmaking_service import Matchmaker
from peer_connect.services.scoring_service import ScoringEngine
from peer_connect.services.session_service import SessionEngine
from peer_connect.services.stats_service import StatsAggregator
from peer_connect.services.trust_service import TrustRegistry


def resolve_user_id(raw: str | None) -> str:
    user_id = (raw or "").strip()
    if not user_id:
        raise Unauthenticated("Missing caller identity")
    return user_id


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Stable user id forwarded by the identity gateway in ``X-User-Id``."""
    return resolve_user_id(x_user_id)


def get_event_bus() -> SessionEventBus:
    return SessionEventBus(get_redis_client())


def get_trust_registry(store: RecordStore = Depends(get_store)) -> TrustRegistry:
    return TrustRegistry(store)


def get_scoring_engine(
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ScoringEngine:
    return ScoringEngine(store, settings)


def get_session_engine(
    store: RecordStore = Depends(get_store),
    scoring: ScoringEngine = Depends(get_scoring_engine),
    settings: Settings = Depends(get_settings),
    bus: SessionEventBus = Depends(get_event_bus),
) -> SessionEngine:
    return SessionEngine(store, deck_service, scoring, settings, bus)


def get_matchmaker(
    store: RecordStore = Depends(get_store),
    trust: TrustRegistry = Depends(get_trust_registry),
    settings: Settings = Depends(get_settings),
    bus: SessionEventBus = Depends(get_event_bus),
) -> Matchmaker:
    return Matchmaker(store, trust, deck_service, settings, bus)


def get_stats_aggregator(
    store: RecordStore = Depends(get_store),
    trust: TrustRegistry = Depends(get_trust_registry),
) -> StatsAggregator:
    return StatsAggregator(store, trust)
