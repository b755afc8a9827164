"""Stats endpoints - streak, points and session totals for dashboards."""

from fastapi import APIRouter, Depends

from peer_connect.api.deps import get_current_user_id, get_stats_aggregator
from peer_connect.schemas.stats import UserStats
from peer_connect.services.stats_service import StatsAggregator

router = APIRouter()


@router.get("/me", response_model=UserStats)
async def get_my_stats(
    user_id: str = Depends(get_current_user_id),
    stats: StatsAggregator = Depends(get_stats_aggregator),
):
    return await stats.get_stats(user_id)


@router.get("/{user_id}", response_model=UserStats)
async def get_user_stats(user_id: str, stats: StatsAggregator = Depends(get_stats_aggregator)):
    return await stats.get_stats(user_id)
