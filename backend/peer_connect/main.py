"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from peer_connect.db.database import engine, Base
from peer_connect.db.redis import close_redis
from peer_connect.errors import PeerConnectError
from peer_connect.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Startup: create tables (dev only; use migrations in production)
    import peer_connect.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Shutdown: close connections
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title="Peer-Connect API",
    description="Paired multiple-choice sessions with blind answers, reveals, streaks and points",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PeerConnectError)
async def peer_connect_error_handler(request: Request, exc: PeerConnectError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__},
    )


# --- Routes ---
from peer_connect.api.deps import get_event_bus  # noqa: E402
from peer_connect.api.routes import decks, trust, sessions, stats, maintenance  # noqa: E402
from peer_connect.api.websocket import session_ws  # noqa: E402
from peer_connect.services.event_bus import SessionEventBus  # noqa: E402

app.include_router(decks.router, prefix="/api/decks", tags=["decks"])
app.include_router(trust.router, prefix="/api/trust", tags=["trust"])
app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(stats.router, prefix="/api/stats", tags=["stats"])
app.include_router(maintenance.router, prefix="/api/maintenance", tags=["maintenance"])
app.include_router(session_ws.router, tags=["websocket"])


@app.get("/health")
async def health_check(bus: SessionEventBus = Depends(get_event_bus)):
    """Liveness, plus whether session events can be pushed."""
    if bus.redis is None:
        event_bus = "disabled"
    else:
        event_bus = "up" if await bus.is_reachable() else "down"
    return {"status": "ok", "event_bus": event_bus}
