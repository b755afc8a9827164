"""Shared test fixtures - uses async SQLite for isolated testing."""

import json
import random
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from peer_connect.config import Settings, get_settings
from peer_connect.db.database import Base
from peer_connect.db.store import RecordStore, get_store
from peer_connect.services.deck_service import DeckService
from peer_connect.services.event_bus import SessionEventBus
from peer_connect.services.matchmaking_service import Matchmaker
from peer_connect.services.scoring_service import ScoringEngine
from peer_connect.services.session_service import SessionEngine
from peer_connect.services.stats_service import StatsAggregator
from peer_connect.services.trust_service import TrustRegistry


class FakeClock:
    """Controllable clock. Every reading moves forward 1ms so creation order is strict."""

    def __init__(self, start: datetime = datetime(2024, 1, 10, 9, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(milliseconds=1)
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

    def set(self, when: datetime) -> None:
        self.current = when


class RecordingRedis:
    """Stands in for the Redis client; keeps every published message."""

    def __init__(self):
        self.published: list[tuple[str, dict]] = []

    async def publish(self, channel: str, payload: str) -> int:
        self.published.append((channel, json.loads(payload)))
        return 1

    async def ping(self) -> bool:
        return True

    def events(self) -> list[str]:
        return [p["event"] for _, p in self.published]


@pytest.fixture
async def session_factory(tmp_path):
    """A fresh SQLite file per test; separate connections so writers really contend."""
    # Import all models so Base.metadata knows about them
    import peer_connect.models  # noqa: F401

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'peer_connect.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return RecordStore(session_factory)


@pytest.fixture
def settings():
    return Settings(
        PAIRING_MODE="open",
        DEFAULT_PILLAR="general",
        CARDS_PER_SESSION=3,
        CARD_POINTS=10,
        MATCH_BONUS=5,
        WAITING_TIMEOUT_SECONDS=300,
        ACTIVE_TIMEOUT_SECONDS=900,
        CONFLICT_RETRY_LIMIT=3,
        SCORING_RETRY_LIMIT=1,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def decks():
    return DeckService(rng=random.Random(7))


@pytest.fixture
def redis():
    return RecordingRedis()


@pytest.fixture
def bus(redis):
    return SessionEventBus(redis)


@pytest.fixture
def trust(store):
    return TrustRegistry(store)


@pytest.fixture
def scoring(store, settings, clock):
    return ScoringEngine(store, settings, clock)


@pytest.fixture
def matchmaker(store, trust, decks, settings, bus, clock):
    return Matchmaker(store, trust, decks, settings, bus, clock)


@pytest.fixture
def engine(store, decks, scoring, settings, bus, clock):
    return SessionEngine(store, decks, scoring, settings, bus, clock)


@pytest.fixture
def stats(store, trust):
    return StatsAggregator(store, trust)


@pytest.fixture
async def paired(matchmaker):
    """An active session between alice (participant_a) and bob."""
    await matchmaker.request_pairing("alice")
    return await matchmaker.request_pairing("bob")


@pytest.fixture
async def client(store, settings):
    """Async HTTP test client with test store, settings and a disconnected bus."""
    from peer_connect.api.deps import get_event_bus
    from peer_connect.main import app

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_event_bus] = lambda: SessionEventBus(None)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()