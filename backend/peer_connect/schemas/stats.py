"""Stats Pydantic schemas."""

from pydantic import BaseModel


class UserStats(BaseModel):
    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    total_sessions: int = 0
    total_points: int = 0
    peer_sessions_completed: int = 0
    trusted_peer_count: int = 0
