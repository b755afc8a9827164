"""Trust-related Pydantic schemas."""

from pydantic import BaseModel


class TrustedPeers(BaseModel):
    owner_id: str
    peers: list[str]
